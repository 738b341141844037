"""ICMP echo exchanges over one shared raw socket, run as coroutines."""

import asyncio
import logging
import os
import socket
import time
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from .icmp import (
    DEFAULT_PAYLOAD_SIZE,
    EchoStatus,
    create_echo_request,
    parse_icmp_reply,
)

logger = logging.getLogger(__name__)

RECV_BUFFER_SIZE = 65535

PERMISSION_DENIED = "Permission denied. Run with root/administrator privileges."


@dataclass(frozen=True)
class ProbeOutcome:
    """Result of one echo request."""

    host: str
    status: EchoStatus
    rtt: Optional[float] = None  # in milliseconds, successes only
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status is EchoStatus.Success


def default_packet_id() -> int:
    return os.getpid() & 0xFFFF


def describe_error(error: BaseException) -> str:
    if isinstance(error, PermissionError):
        return PERMISSION_DENIED
    return str(error)


def open_icmp_socket() -> socket.socket:
    sock = socket.socket(socket.AF_INET, socket.SOCK_RAW, socket.IPPROTO_ICMP)
    sock.setblocking(False)
    return sock


async def resolve(host: str) -> str:
    loop = asyncio.get_running_loop()
    infos = await loop.getaddrinfo(host, None, family=socket.AF_INET)
    return infos[0][4][0]


class EchoSession:
    """One raw ICMP socket shared by every echo request in flight.

    A single reader parses each incoming datagram once and hands it to the
    request waiting for it, looked up by sequence number and the address the
    request was sent to. The socket is opened on first use and closed by
    ``close``.
    """

    def __init__(self, packet_id: Optional[int] = None):
        self.packet_id = packet_id if packet_id is not None else default_packet_id()
        self.sock: Optional[socket.socket] = None
        self.open_error: Optional[OSError] = None
        self._failure: Optional[OSError] = None
        self._reader: Optional[asyncio.Task] = None
        self._waiters: Dict[Tuple[int, str], asyncio.Future] = {}

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        await self.close()

    def _ensure_open(self):
        if self.sock is not None:
            return
        if self.open_error is not None:
            raise self.open_error
        try:
            self.sock = open_icmp_socket()
        except OSError as e:
            self.open_error = e
            raise
        self._reader = asyncio.ensure_future(self._read())

    async def close(self):
        if self._reader is not None:
            self._reader.cancel()
            await asyncio.gather(self._reader, return_exceptions=True)
            self._reader = None
        for future in self._waiters.values():
            future.cancel()
        self._waiters.clear()
        if self.sock is not None:
            self.sock.close()

    async def _read(self):
        loop = asyncio.get_running_loop()
        while True:
            try:
                data, _ = await loop.sock_recvfrom(self.sock, RECV_BUFFER_SIZE)
            except OSError as e:
                logger.debug("Receiving on ICMP socket failed: %s", e)
                self._failure = e
                for future in self._waiters.values():
                    if not future.done():
                        future.set_exception(e)
                return
            self.dispatch(data, time.perf_counter())

    def dispatch(self, data: bytes, recv_time: float) -> bool:
        """Resolve the request ``data`` answers. Returns whether one matched."""
        reply = parse_icmp_reply(data)
        if reply is None or reply.identifier != self.packet_id:
            return False

        future = self._waiters.get((reply.sequence, reply.destination))
        if future is None or future.done():
            return False
        future.set_result((reply.status, recv_time))
        return True

    async def request(
        self, address: str, seq: int, payload_size: int = DEFAULT_PAYLOAD_SIZE
    ) -> Tuple[EchoStatus, Optional[float]]:
        """Send one echo request to ``address`` and wait for its answer.

        Returns the status and, for a success, the round-trip time in
        milliseconds. Waits forever; callers bound it with a timeout.
        """
        self._ensure_open()
        if self._failure is not None:
            raise self._failure

        loop = asyncio.get_running_loop()
        key = (seq & 0xFFFF, address)
        future = loop.create_future()
        self._waiters[key] = future
        try:
            packet = create_echo_request(self.packet_id, seq, payload_size)
            send_time = time.perf_counter()
            await loop.sock_sendto(self.sock, packet, (address, 0))
            status, recv_time = await future
        finally:
            if self._waiters.get(key) is future:
                del self._waiters[key]

        if status is EchoStatus.Success:
            return status, (recv_time - send_time) * 1000  # in milliseconds
        return status, None


async def _exchange(
    session: EchoSession,
    host: str,
    address: Optional[str],
    seq: int,
    payload_size: int,
) -> ProbeOutcome:
    if address is None:
        address = await resolve(host)
    status, rtt = await session.request(address, seq, payload_size)
    return ProbeOutcome(host, status, rtt=rtt)


async def echo_probe(
    host: str,
    timeout: float,
    seq: int,
    packet_id: Optional[int] = None,
    payload_size: int = DEFAULT_PAYLOAD_SIZE,
    session: Optional[EchoSession] = None,
    address: Optional[str] = None,
) -> ProbeOutcome:
    """Send one echo request to ``host`` and wait up to ``timeout`` seconds.

    The request goes out on ``session``, or on a socket of its own when no
    session is given. ``address`` skips name resolution when the caller has
    already resolved ``host``.

    Never raises: timeouts, resolution failures, missing privileges and any
    other socket error come back as a ``ProbeOutcome``.
    """
    if session is None:
        async with EchoSession(packet_id) as own:
            return await echo_probe(
                host,
                timeout,
                seq,
                payload_size=payload_size,
                session=own,
                address=address,
            )

    try:
        return await asyncio.wait_for(
            _exchange(session, host, address, seq, payload_size), timeout
        )
    except asyncio.TimeoutError:
        return ProbeOutcome(host, EchoStatus.TimedOut)
    except Exception as e:
        logger.debug("Echo request %d to %s failed: %s", seq, host, e)
        return ProbeOutcome(host, EchoStatus.Unknown, error=describe_error(e))
