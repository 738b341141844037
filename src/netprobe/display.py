"""Text rendering of host reports."""

from typing import Optional, Sequence

from .loop import IterationConfig
from .stats import HostReport


def _ms(value: Optional[float]) -> str:
    return "-" if value is None else f"{value:.3f}"


def format_header(round_number: int, config: IterationConfig) -> str:
    total = config.rounds
    of = f"/{total}" if total is not None else ""
    return (
        f"--- round {round_number}{of}: {config.echo_requests} echo requests "
        f"of {config.payload_size} bytes per host ---\n"
    )


def format_report(report: HostReport) -> str:
    line = (
        f"{report.host}: {report.status.value}, "
        f"{report.sent} packets transmitted, {report.received} received, "
        f"{report.percent_lost:.1f}% packet loss"
    )
    if report.online:
        line += (
            f", rtt min/avg/p50/p90/max = "
            f"{_ms(report.min_rtt)}/{_ms(report.avg_rtt)}/{_ms(report.p50_rtt)}/"
            f"{_ms(report.p90_rtt)}/{_ms(report.max_rtt)} ms"
        )
    elif report.error:
        line += f" ({report.error})"
    return line + "\n"


def format_summary(reports: Sequence[HostReport]) -> str:
    online = sum(1 for r in reports if r.online)
    return f"{len(reports)} hosts probed, {online} online\n"
