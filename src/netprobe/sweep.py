"""Single-round probing of a whole address range."""

import dataclasses
from ipaddress import AddressValueError, IPv4Address
from typing import Iterable, List, Optional

from .addressing import AddressRange
from .loop import IterationConfig, probe
from .scheduler import ProbeScheduler
from .stats import HostReport


def _sort_key(report: HostReport):
    # IPv4 literals in numeric order, then any names alphabetically.
    try:
        return (0, int(IPv4Address(report.host)), "")
    except AddressValueError:
        return (1, 0, report.host)


def sort_reports(reports: Iterable[HostReport]) -> List[HostReport]:
    return sorted(reports, key=_sort_key)


def sweep(
    address_range: AddressRange,
    config: Optional[IterationConfig] = None,
    online_only: bool = False,
    scheduler: Optional[ProbeScheduler] = None,
) -> List[HostReport]:
    """Probe every address in ``address_range`` once.

    Returns the reports sorted by address, optionally only those of hosts
    that answered.
    """
    if config is None:
        config = IterationConfig()
    config = dataclasses.replace(config, count=1, continuous=False)

    targets = list(address_range)
    if not targets:
        return []

    reports: List[HostReport] = []
    for _, batch in probe(targets, config, scheduler=scheduler):
        reports.extend(batch)

    if online_only:
        reports = [r for r in reports if r.online]
    return sort_reports(reports)
