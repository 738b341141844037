"""Repeated probing rounds at a fixed interval."""

import asyncio
import logging
import threading
import time
from dataclasses import dataclass
from typing import Generator, Iterable, List, Optional, Tuple

from .errors import ConfigurationConflict
from .icmp import DEFAULT_PAYLOAD_SIZE, MAX_PAYLOAD_SIZE
from .scheduler import ProbeScheduler
from .stats import HostReport, aggregate

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IterationConfig:
    """How many probes to send, how long to wait, and how often to repeat.

    ``count`` and ``continuous`` are exclusive; leaving both unset runs a
    single round.
    """

    echo_requests: int = 4
    timeout: float = 5.0
    interval: float = 1.0
    count: Optional[int] = None
    continuous: bool = False
    payload_size: int = DEFAULT_PAYLOAD_SIZE

    def __post_init__(self):
        if self.continuous and self.count is not None:
            raise ConfigurationConflict("count and continuous cannot be used together")
        if self.count is not None and self.count < 1:
            raise ConfigurationConflict(f"count must be positive, got {self.count}")
        if self.echo_requests < 1:
            raise ConfigurationConflict(
                f"echo_requests must be positive, got {self.echo_requests}"
            )
        if self.timeout <= 0:
            raise ConfigurationConflict(f"timeout must be positive, got {self.timeout}")
        if self.interval < 0:
            raise ConfigurationConflict(
                f"interval cannot be negative, got {self.interval}"
            )
        if not 0 <= self.payload_size <= MAX_PAYLOAD_SIZE:
            raise ConfigurationConflict(
                f"payload_size must be between 0 and {MAX_PAYLOAD_SIZE}, "
                f"got {self.payload_size}"
            )

    @property
    def rounds(self) -> Optional[int]:
        """Number of rounds to run, ``None`` for no limit."""
        if self.continuous:
            return None
        return self.count if self.count is not None else 1


def run_round(scheduler: ProbeScheduler, hosts: List[str]) -> List[HostReport]:
    """Run one round and summarize it, one report per host in target order."""
    outcomes = asyncio.run(scheduler.run_round(hosts))
    return [aggregate(host, outcomes[host]) for host in hosts]


def probe(
    targets: Iterable[str],
    config: IterationConfig,
    scheduler: Optional[ProbeScheduler] = None,
    stop_event: Optional[threading.Event] = None,
) -> Generator[Tuple[int, List[HostReport]], None, None]:
    """Probe ``targets`` round after round, yielding each round's reports.

    Yields ``(round_number, reports)`` with rounds numbered from 1. A round
    always runs to completion; stopping, whether by closing the generator
    or setting ``stop_event``, takes effect between rounds.
    """
    hosts = list(dict.fromkeys(targets))
    if scheduler is None:
        scheduler = ProbeScheduler(
            timeout=config.timeout,
            echo_requests=config.echo_requests,
            payload_size=config.payload_size,
        )

    rounds = config.rounds
    round_number = 0
    while rounds is None or round_number < rounds:
        if stop_event is not None and stop_event.is_set():
            logger.debug("Stopped before round %d", round_number + 1)
            return

        round_number += 1
        started = time.monotonic()
        reports = run_round(scheduler, hosts)
        logger.debug(
            "Round %d: %d/%d hosts online",
            round_number,
            sum(1 for r in reports if r.online),
            len(reports),
        )
        yield round_number, reports

        if rounds is not None and round_number >= rounds:
            break

        delay = max(0.0, config.interval - (time.monotonic() - started))
        if stop_event is not None:
            stop_event.wait(delay)
        elif delay:
            time.sleep(delay)
