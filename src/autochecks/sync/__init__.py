"""Sync engine.

Identity resolution, the union merge, the snapshot codec, the orchestrator
driving remote round trips, the mutation watcher and the status publisher.
Import the submodules directly.
"""
