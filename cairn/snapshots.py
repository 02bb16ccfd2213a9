"""Listing of committed snapshots, preferring the encrypted host index."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from cairn.manifest import ManifestError, unmarshal_index_json
from cairn.paths import (
    hosts_root_prefix,
    index_key,
    parse_host_id_from_hosts_path,
    snapshot_id_from_key,
)
from cairn.store import StoreError

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class SnapshotRow:
    """One listed snapshot."""

    host_id: str
    snapshot_id: str
    created_at: str = ""


def _rows_from_index(store, host, decrypt):
    try:
        with store.get_object(index_key(host)) as stream:
            blob = stream.read()
    except (StoreError, OSError):
        return None
    try:
        plain = decrypt(blob)
    except Exception:  # any decryption failure means the index is unusable
        return None
    try:
        index = unmarshal_index_json(plain)
    except ManifestError:
        return None
    return [SnapshotRow(index.host_id, snap.snapshot_id, snap.created_at) for snap in index.snapshots]


def list_snapshots(store, host_id, decrypt=None, filter_host=""):
    """Return snapshot rows, from the host index when it can be decrypted.

    ``decrypt`` turns index ciphertext into plaintext; without it the index is
    not consulted. Otherwise manifests under the hosts prefix are listed,
    restricted to ``filter_host`` when given.
    """
    if decrypt is not None:
        rows = _rows_from_index(store, filter_host or host_id, decrypt)
        if rows is not None:
            for row in rows:
                log.info(
                    "snapshot host_id=%s snapshot_id=%s created_at=%s",
                    row.host_id,
                    row.snapshot_id,
                    row.created_at,
                )
            return rows

    rows = []
    seen = set()
    for obj in store.list_prefix(hosts_root_prefix()):
        if not obj.key.endswith("manifest.age"):
            continue
        host = parse_host_id_from_hosts_path(obj.key)
        if not host or (filter_host and host != filter_host):
            continue
        sid = snapshot_id_from_key(obj.key)
        if not sid or (host, sid) in seen:
            continue
        seen.add((host, sid))
        rows.append(SnapshotRow(host, sid))
        log.info("snapshot host_id=%s snapshot_id=%s", host, sid)
    if not rows:
        log.warning("no snapshots found")
    return rows