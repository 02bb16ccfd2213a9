"""Aggregate listing totals for everything under the hosts prefix."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from cairn.paths import hosts_root_prefix, parse_host_id_from_hosts_path, snapshot_id_from_key
from cairn.pricing import disclaimer, format_usd, monthly_estimate_usd

log = logging.getLogger(__name__)


@dataclass
class HostSummary:
    """Committed snapshot counts for one host."""

    host_id: str
    snapshots: int = 0
    oldest: str = ""
    newest: str = ""


@dataclass
class StatusReport:
    """Totals of a status run."""

    hosts: dict[str, HostSummary] = field(default_factory=dict)
    bytes_by_class: dict[str, int] = field(default_factory=dict)
    cost_usd: float | None = None

    @property
    def bytes_total(self):
        return sum(self.bytes_by_class.values())


def run(store, filter_host="", show_cost=False):
    """Summarise stored bytes per storage class and snapshots per host.

    ``filter_host`` restricts the report to one host; ``show_cost`` adds a
    monthly cost estimate.
    """
    report = StatusReport()
    for obj in store.list_prefix(hosts_root_prefix()):
        host = parse_host_id_from_hosts_path(obj.key)
        if not host or (filter_host and host != filter_host):
            continue
        storage_class = obj.storage_class or "STANDARD"
        report.bytes_by_class[storage_class] = report.bytes_by_class.get(storage_class, 0) + obj.size

        if "/snapshots/" in obj.key and obj.key.endswith("manifest.age"):
            summary = report.hosts.setdefault(host, HostSummary(host_id=host))
            summary.snapshots += 1
            sid = snapshot_id_from_key(obj.key)
            if not sid:
                continue
            if not summary.oldest or sid < summary.oldest:
                summary.oldest = sid
            if not summary.newest or sid > summary.newest:
                summary.newest = sid

    for summary in report.hosts.values():
        log.info(
            "host %s: snapshots=%d oldest=%s newest=%s",
            summary.host_id,
            summary.snapshots,
            summary.oldest,
            summary.newest,
        )
    for storage_class, size in report.bytes_by_class.items():
        log.info("bytes_by_class %s: %d", storage_class, size)
    log.info("bytes_total: %d", report.bytes_total)

    if show_cost:
        report.cost_usd = sum(
            monthly_estimate_usd(storage_class, size)
            for storage_class, size in report.bytes_by_class.items()
        )
        log.info("cost_estimate: %s/month (%s)", format_usd(report.cost_usd), disclaimer())
    return report