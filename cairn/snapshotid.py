"""Sortable snapshot identifiers."""

import secrets
from datetime import datetime, timezone

_FORMAT = "%Y%m%dT%H%M%SZ"


def new_snapshot_id(now=None):
    """Return an ID of the form YYYYMMDDTHHMMSSZ-xxxxxxxx (8 random hex digits).

    ``now`` defaults to the current time; naive datetimes are taken as UTC.
    """
    if now is None:
        now = datetime.now(timezone.utc)
    elif now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    else:
        now = now.astimezone(timezone.utc)
    stamp = now.strftime(_FORMAT)
    try:
        suffix = int.from_bytes(secrets.token_bytes(4), "big")
    except OSError as exc:
        raise OSError(f"snapshot id: {exc}") from exc
    return f"{stamp}-{suffix:08x}"