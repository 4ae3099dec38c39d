#!/usr/bin/env python3
"""Run one cloud sync operation against the configured Supabase project.

Configuration comes from ``SyncConfig.from_env()`` (``AUTOCHECKS_*`` or
``SUPABASE_URL`` / ``SUPABASE_ANON_KEY``). Credentials:
- AUTOCHECKS_EMAIL
- AUTOCHECKS_PASSWORD

Set AUTOCHECKS_STORE_PATH to sync a persisted local store; otherwise the
local side starts empty.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from pathlib import Path
from typing import Any

_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from autochecks import AutoChecksError, SyncClient, SyncConfig  # noqa: E402


async def _run(client: SyncClient, command: str, account_id: str) -> Any:
    if command == "sync":
        return await client.smart_sync(account_id)
    if command == "push":
        return await client.push(account_id)
    if command == "pull":
        return await client.pull(account_id)
    return await client.hydrate_for_account(account_id)


async def main() -> int:
    parser = argparse.ArgumentParser(description="Run an autochecks cloud sync operation.")
    parser.add_argument("command", choices=["sync", "push", "pull", "hydrate"], help="Operation to run")
    parser.add_argument("--email", default=os.environ.get("AUTOCHECKS_EMAIL"), help="Account email")
    parser.add_argument("--password", default=os.environ.get("AUTOCHECKS_PASSWORD"), help="Account password")
    parser.add_argument("--json", action="store_true", dest="json_mode", help="Output machine-readable JSON")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")
    else:
        logging.basicConfig(level=logging.WARNING)

    if not args.email or not args.password:
        parser.error("email and password are required (flags or AUTOCHECKS_EMAIL / AUTOCHECKS_PASSWORD)")

    config = SyncConfig.from_env(auto_sync=False)
    try:
        async with SyncClient(config) as client:
            session = await client.sign_in(args.email, args.password, hydrate=False)
            result = await _run(client, args.command, session.user_id)
            snapshot = await client.store.read_all()
            status = client.status
    except AutoChecksError as exc:
        print(f"{args.command} failed: {type(exc).__name__}: {exc}", file=sys.stderr)
        return 1

    report = {
        "command": args.command,
        "result": str(result),
        "status": status.model_dump(mode="json"),
        "vehicles": len(snapshot.vehicles),
        "checks": len(snapshot.checks),
    }
    if args.json_mode:
        print(json.dumps(report, indent=2))
    else:
        print(f"  command : {report['command']}")
        print(f"  result  : {report['result']}")
        print(f"  status  : {status.state} (last synced {status.last_synced_at or 'never'})")
        print(f"  local   : {report['vehicles']} vehicles, {report['checks']} checks")
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
