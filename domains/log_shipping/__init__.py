"""
Log Shipping Domain

Keeps a standby SQL Server database in sync with its primary by replaying
transaction-log backups from a directory:
- models.py - Segments, selection criteria and per-run state
- run_config.py - Settings validated into a run configuration
- timestamps.py - Order keys parsed from backup file names
- selector.py - Listing, filtering and ordering of pending log segments
- watchers/filesystem.py - Directory watcher feeding live mode
- orchestrator.py - Seed restore, catch-up passes and live monitoring
"""

__all__ = ["exceptions", "models", "orchestrator", "run_config", "selector", "timestamps", "watchers"]
