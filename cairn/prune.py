"""Deletion of snapshot trees by explicit ID or by retention rules."""

from __future__ import annotations

import calendar
import logging
from datetime import datetime, timezone

from cairn.paths import (
    parse_snapshot_time,
    snapshot_id_from_key,
    snapshot_prefix,
    snapshots_list_prefix,
)
from cairn.store import StoreError

log = logging.getLogger(__name__)


class PruneError(Exception):
    """Pruning could not be carried out."""


def _months_back(moment, months):
    """Calendar month reached by stepping ``months`` back, normalising overflowing days."""
    year, month0 = divmod(moment.year * 12 + moment.month - 1 - months, 12)
    month = month0 + 1
    if moment.day > calendar.monthrange(year, month)[1]:
        year, month0 = divmod(year * 12 + month, 12)
        month = month0 + 1
    return year, month


def select_snapshots_to_keep(all_ids, keep_last=0, keep_monthly=0, now=None):
    """Return the set of snapshot IDs to retain.

    The newest ``keep_last`` IDs are kept, plus the newest snapshot of each of
    the last ``keep_monthly`` calendar months (UTC) counting from ``now``.
    IDs sort newest-first lexicographically.
    """
    ordered = sorted(all_ids, reverse=True)
    keep = set(ordered[:keep_last]) if keep_last > 0 else set()

    if keep_monthly > 0:
        if now is None:
            now = datetime.now(timezone.utc)
        elif now.tzinfo is not None:
            now = now.astimezone(timezone.utc)
        wanted = {_months_back(now, i) for i in range(keep_monthly)}
        chosen = set()
        for sid in ordered:
            try:
                stamp = parse_snapshot_time(sid)
            except ValueError:
                continue
            month = (stamp.year, stamp.month)
            if month in wanted and month not in chosen:
                chosen.add(month)
                keep.add(sid)

    return keep


def _delete_snapshot_tree(store, host_id, snapshot_id, dry_run):
    try:
        listed = store.list_prefix(snapshot_prefix(host_id, snapshot_id))
    except (StoreError, OSError) as exc:
        raise PruneError(f"prune list {snapshot_id}: {exc}") from exc
    log.info(
        "prune: deleting snapshot %s (%d objects, dry_run=%s)",
        snapshot_id,
        len(listed),
        dry_run,
    )
    if dry_run:
        return
    for obj in listed:
        try:
            store.delete_object(obj.key)
        except (StoreError, OSError) as exc:
            raise PruneError(f"prune delete {obj.key}: {exc}") from exc


def run(store, host_id, remove_ids=(), keep_last=0, keep_monthly=0, dry_run=False):
    """Delete snapshot trees of a host and return the IDs removed, in order.

    With ``remove_ids`` only those committed snapshots are removed and the
    retention rules are ignored; otherwise every committed snapshot not
    retained by ``keep_last`` / ``keep_monthly`` is removed. In a dry run
    nothing is deleted but the IDs that would be are still returned.
    """
    committed = set()
    for obj in store.list_prefix(snapshots_list_prefix(host_id)):
        if obj.key.endswith("manifest.age"):
            sid = snapshot_id_from_key(obj.key)
            if sid:
                committed.add(sid)

    removed = []
    if remove_ids:
        for sid in dict.fromkeys(remove_ids):
            if sid not in committed:
                raise PruneError(f"prune: no committed snapshot {sid!r} for host {host_id!r}")
            _delete_snapshot_tree(store, host_id, sid, dry_run)
            removed.append(sid)
        return removed

    keep = select_snapshots_to_keep(committed, keep_last, keep_monthly)
    for sid in sorted(committed - keep):
        _delete_snapshot_tree(store, host_id, sid, dry_run)
        removed.append(sid)
    return removed