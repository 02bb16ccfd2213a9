"""Object keys under the cairn/v1 layout prefix."""

import posixpath
from datetime import datetime, timezone

LAYOUT_PREFIX = "cairn/v1"

_SNAPSHOT_TIME_FORMAT = "%Y%m%dT%H%M%SZ"


def _join(*elements):
    joined = "/".join(e for e in elements if e)
    return posixpath.normpath(joined) if joined else ""


def hosts_root_prefix():
    """Prefix covering every host subtree (with trailing slash)."""
    return LAYOUT_PREFIX + "/hosts/"


def host_prefix(host_id):
    """Prefix for all objects belonging to a host."""
    return _join(LAYOUT_PREFIX, "hosts", host_id) + "/"


def snapshot_prefix(host_id, snapshot_id):
    """Prefix for one snapshot directory (with trailing slash)."""
    return _join(LAYOUT_PREFIX, "hosts", host_id, "snapshots", snapshot_id) + "/"


def manifest_key(host_id, snapshot_id):
    """Key of the committed manifest object for a snapshot."""
    return _join(LAYOUT_PREFIX, "hosts", host_id, "snapshots", snapshot_id, "manifest.age")


def object_key(host_id, snapshot_id, object_id):
    """Key of an encrypted payload object for a file within a snapshot."""
    return _join(LAYOUT_PREFIX, "hosts", host_id, "snapshots", snapshot_id, "objects", object_id)


def index_key(host_id):
    """Key of the optional encrypted index cache for a host."""
    return _join(LAYOUT_PREFIX, "hosts", host_id, "index.age")


def snapshots_list_prefix(host_id):
    """Prefix covering all snapshot subtrees of a host."""
    return _join(LAYOUT_PREFIX, "hosts", host_id, "snapshots") + "/"


def parse_snapshot_id_from_manifest_key(key):
    """Snapshot ID from a manifest object key, or "" if the key is not a manifest path."""
    parts = key.split("/")
    for i, part in enumerate(parts[:-1]):
        if part == "snapshots" and i + 2 < len(parts) and parts[i + 2] == "manifest.age":
            return parts[i + 1]
    return ""


def snapshot_id_from_key(key):
    """Snapshot directory name from a key under .../snapshots/<id>/..., or ""."""
    marker = "/snapshots/"
    start = key.find(marker)
    if start < 0:
        return ""
    rest = key[start + len(marker):]
    end = rest.find("/")
    if end <= 0:
        return ""
    return rest[:end]


def parse_host_id_from_hosts_path(key):
    """Host ID from keys like cairn/v1/hosts/<host>/..., or ""."""
    parts = key.split("/")
    for i, part in enumerate(parts[:-1]):
        if part == "hosts":
            return parts[i + 1]
    return ""


def parse_snapshot_time(snapshot_id):
    """Parse the UTC timestamp at the start of a snapshot ID.

    Raises ValueError if the ID does not carry a valid timestamp.
    """
    if not snapshot_id:
        raise ValueError("empty snapshot id")
    stamp, hyphen, _ = snapshot_id.partition("-")
    if not hyphen:
        raise ValueError(f"snapshot id missing hyphen suffix: {snapshot_id!r}")
    if len(stamp) != 16 or stamp[15] != "Z" or not (stamp[:8] + stamp[9:15]).isdigit():
        raise ValueError(f"invalid snapshot timestamp in id {snapshot_id!r}")
    try:
        parsed = datetime.strptime(stamp, _SNAPSHOT_TIME_FORMAT)
    except ValueError as exc:
        raise ValueError(f"invalid snapshot timestamp in id {snapshot_id!r}: {exc}") from exc
    return parsed.replace(tzinfo=timezone.utc)