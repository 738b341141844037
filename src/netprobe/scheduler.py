"""Concurrent dispatch of one round of echo probes."""

import asyncio
import ipaddress
import logging
import socket
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Tuple

from .echo import (
    EchoSession,
    ProbeOutcome,
    default_packet_id,
    describe_error,
    echo_probe,
    resolve,
)
from .icmp import DEFAULT_PAYLOAD_SIZE, EchoStatus

logger = logging.getLogger(__name__)

# Extra seconds the round join waits past the per-probe timeout.
JOIN_MARGIN = 1.0

ProbeFunc = Callable[..., Awaitable[ProbeOutcome]]


class ResolutionCache:
    """Remembers what each host name resolved to, for one invocation.

    Names that do not resolve are warned about once; probes to such hosts
    are still sent and fail on their own.
    """

    def __init__(self):
        self._addresses: Dict[str, Optional[str]] = {}

    def __contains__(self, host: str) -> bool:
        return host in self._addresses

    def get(self, host: str) -> Optional[bool]:
        """Whether ``host`` resolved, or ``None`` if it was never checked."""
        if host not in self._addresses:
            return None
        return self._addresses[host] is not None

    def address(self, host: str) -> Optional[str]:
        return self._addresses.get(host)

    async def check(self, host: str) -> bool:
        if host in self._addresses:
            return self._addresses[host] is not None

        try:
            address: Optional[str] = str(ipaddress.IPv4Address(host))
        except ValueError:
            try:
                address = await resolve(host)
            except (socket.gaierror, UnicodeError):
                logger.warning("Cannot resolve hostname: %s", host)
                address = None

        self._addresses[host] = address
        return address is not None


class ProbeScheduler:
    """Fans out ``echo_requests`` probes per host and joins them once.

    Every probe of a round runs at the same time over one shared
    ``EchoSession``, so a round takes at most ``timeout + margin`` seconds
    whatever the number of hosts. Sequence numbers wrap at 65535; a reply is
    matched on its sequence number and address together.
    """

    def __init__(
        self,
        timeout: float,
        echo_requests: int,
        payload_size: int = DEFAULT_PAYLOAD_SIZE,
        cache: Optional[ResolutionCache] = None,
        probe: ProbeFunc = echo_probe,
        margin: float = JOIN_MARGIN,
        packet_id: Optional[int] = None,
        session_factory: Callable[[int], EchoSession] = EchoSession,
    ):
        self.timeout = timeout
        self.echo_requests = echo_requests
        self.payload_size = payload_size
        self.cache = cache if cache is not None else ResolutionCache()
        self.probe = probe
        self.margin = margin
        self.packet_id = packet_id if packet_id is not None else default_packet_id()
        self.session_factory = session_factory
        self._seq = 0
        self._socket_error_logged = False

    def _next_sequence(self) -> int:
        self._seq = (self._seq + 1) & 0xFFFF
        return self._seq

    @property
    def deadline(self) -> float:
        return self.timeout + self.margin

    async def run_round(self, hosts: Iterable[str]) -> Dict[str, List[ProbeOutcome]]:
        """Probe every host ``echo_requests`` times and collect the outcomes.

        Returns the outcomes keyed by host, hosts in the order given and each
        host's outcomes in the order they completed.
        """
        hosts = list(dict.fromkeys(hosts))
        outcomes: Dict[str, List[ProbeOutcome]] = {host: [] for host in hosts}
        if not hosts or self.echo_requests <= 0:
            return outcomes

        # Cache writes stay on this coroutine, before any probe starts.
        for host in hosts:
            await self.cache.check(host)

        session = self.session_factory(self.packet_id)
        try:
            settled, pending, tasks = await self._dispatch(session, hosts)
        finally:
            await session.close()
        self._log_socket_error(session)

        for task in settled:
            outcomes[tasks[task]].append(self._outcome(task, tasks[task]))
        for task in pending:
            outcomes[tasks[task]].append(ProbeOutcome(tasks[task], EchoStatus.Unknown))

        return outcomes

    async def _dispatch(self, session: EchoSession, hosts: List[str]):
        completed: List[asyncio.Future] = []
        tasks: Dict[asyncio.Future, str] = {}
        for host in hosts:
            for _ in range(self.echo_requests):
                task = asyncio.ensure_future(
                    self.probe(
                        host,
                        self.timeout,
                        self._next_sequence(),
                        payload_size=self.payload_size,
                        session=session,
                        address=self.cache.address(host),
                    )
                )
                task.add_done_callback(completed.append)
                tasks[task] = host

        await asyncio.wait(tasks, timeout=self.deadline)
        settled, pending = self.split_finished(tasks, completed)

        for task in pending:
            task.cancel()
        if pending:
            logger.debug(
                "%d probes still running after %.1fs, counting them as failed",
                len(pending),
                self.deadline,
            )
            await asyncio.gather(*pending, return_exceptions=True)

        return settled, pending, tasks

    @staticmethod
    def split_finished(
        tasks: Iterable[asyncio.Future], completed: List[asyncio.Future]
    ) -> Tuple[List[asyncio.Future], List[asyncio.Future]]:
        """Split ``tasks`` into finished ones, in completion order, and the rest.

        ``completed`` is filled by done callbacks, which run one loop
        iteration after a task finishes; tasks already done but not yet
        logged there are appended after it.
        """
        settled = list(completed)
        seen = set(settled)
        late = [task for task in tasks if task not in seen]
        settled += [task for task in late if task.done()]
        pending = [task for task in late if not task.done()]
        return settled, pending

    def _log_socket_error(self, session: EchoSession):
        error = session.open_error
        if error is None or self._socket_error_logged:
            return
        logger.warning("Cannot open ICMP socket: %s", describe_error(error))
        self._socket_error_logged = True

    @staticmethod
    def _outcome(task: asyncio.Future, host: str) -> ProbeOutcome:
        if task.cancelled():
            return ProbeOutcome(host, EchoStatus.Unknown)
        error = task.exception()
        if error is not None:
            logger.debug("Probe to %s raised %r", host, error)
            return ProbeOutcome(host, EchoStatus.Unknown, error=str(error))
        return task.result()
