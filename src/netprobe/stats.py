"""Per-host summary of one round of probes."""

from collections import Counter
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

from .echo import ProbeOutcome
from .icmp import EchoStatus


@dataclass(frozen=True)
class HostReport:
    """Summary of one host for one round.

    Latency figures are in milliseconds and are ``None`` when no reply came
    back. ``raw_values`` keeps the round-trip times in the order the replies
    arrived. ``error`` is the first failure message among the probes, if any.
    """

    host: str
    online: bool
    status: EchoStatus
    sent: int
    received: int
    lost: int
    percent_lost: float
    avg_rtt: Optional[float] = None
    min_rtt: Optional[float] = None
    p50_rtt: Optional[float] = None
    p90_rtt: Optional[float] = None
    max_rtt: Optional[float] = None
    raw_values: Tuple[float, ...] = ()
    error: Optional[str] = None


def percentile(sorted_values: Sequence[float], fraction: float) -> Optional[float]:
    """Order statistic at ``floor(n * fraction)``, without interpolation."""
    if not sorted_values:
        return None
    index = min(int(len(sorted_values) * fraction), len(sorted_values) - 1)
    return sorted_values[index]


def representative_status(outcomes: Sequence[ProbeOutcome]) -> EchoStatus:
    """Pick the one status that describes a host for the round.

    Any success wins. Otherwise the most frequent failure is used, provided
    no other status occurs as often; a tie gives ``Unknown``.
    """
    if any(outcome.succeeded for outcome in outcomes):
        return EchoStatus.Success

    ranked = Counter(outcome.status for outcome in outcomes).most_common(2)
    if not ranked:
        return EchoStatus.Unknown
    if len(ranked) > 1 and ranked[0][1] == ranked[1][1]:
        return EchoStatus.Unknown
    return ranked[0][0]


def aggregate(host: str, outcomes: Sequence[ProbeOutcome]) -> HostReport:
    """Fold the outcomes of one host's probes into a ``HostReport``."""
    sent = len(outcomes)
    raw_values = tuple(o.rtt for o in outcomes if o.succeeded and o.rtt is not None)
    received = sum(1 for o in outcomes if o.succeeded)
    lost = sent - received
    percent_lost = lost / sent * 100 if sent else 0.0

    report = dict(
        host=host,
        online=received > 0,
        status=representative_status(outcomes),
        sent=sent,
        received=received,
        lost=lost,
        percent_lost=percent_lost,
        raw_values=raw_values,
        error=next((o.error for o in outcomes if o.error), None),
    )

    if raw_values:
        ordered = sorted(raw_values)
        report.update(
            avg_rtt=round(sum(raw_values) / len(raw_values), 2),
            min_rtt=ordered[0],
            p50_rtt=percentile(ordered, 0.5),
            p90_rtt=percentile(ordered, 0.9),
            max_rtt=ordered[-1],
        )

    return HostReport(**report)
