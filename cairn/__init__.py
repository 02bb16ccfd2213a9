"""Encrypted per-host snapshot backups kept in S3-style object storage."""

__version__ = "0.1.0"

__all__ = [
    "manifest",
    "paths",
    "pricing",
    "prune",
    "restore",
    "snapshotid",
    "snapshots",
    "status",
    "store",
    "verify",
    "version",
]