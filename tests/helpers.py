import asyncio
import struct
from contextlib import ExitStack
from unittest.mock import patch

from netprobe.echo import ProbeOutcome
from netprobe.icmp import ICMP_ECHO_REQUEST, EchoStatus, checksum


def ip_header(source="8.8.8.8", ttl=64, destination="192.0.2.1"):
    header = bytearray(20)
    header[0] = 0x45
    header[8] = ttl
    header[12:16] = bytes(int(part) for part in source.split("."))
    header[16:20] = bytes(int(part) for part in destination.split("."))
    return bytes(header)


def icmp_message(icmp_type, code, rest, body=b""):
    """ICMP message with a valid checksum. ``rest`` is the 4 bytes after it."""
    header = struct.pack("!BBH", icmp_type, code, 0) + rest
    cksum = checksum(header + body)
    return struct.pack("!BBH", icmp_type, code, cksum) + rest + body


def echo_reply(packet_id, seq, source="8.8.8.8", payload=bytes(56)):
    rest = struct.pack("!HH", packet_id, seq)
    return ip_header(source) + icmp_message(0, 0, rest, payload)


def icmp_error(
    icmp_type, code, packet_id, seq, source="10.0.0.1", destination="8.8.8.8"
):
    quoted_request = struct.pack("!BBHHH", ICMP_ECHO_REQUEST, 0, 0, packet_id, seq)
    body = ip_header("192.0.2.1", destination=destination) + quoted_request
    return ip_header(source) + icmp_message(icmp_type, code, bytes(4), body)


class FakeIcmpNetwork:
    """Stands in for the event loop's raw socket calls.

    Every echo request sent is answered through ``respond(address,
    packet_id, seq)``, which returns the datagram to deliver or ``None`` for
    silence. Datagrams can also be queued up front with ``feed``.
    """

    def __init__(self, respond=None):
        self.respond = respond or (
            lambda address, packet_id, seq: echo_reply(packet_id, seq, source=address)
        )
        self.sent = []
        self.received = 0
        self._inbox = None

    @property
    def inbox(self):
        if self._inbox is None:
            self._inbox = asyncio.Queue()
        return self._inbox

    def feed(self, data):
        self.inbox.put_nowait(data)

    async def sock_sendto(self, sock, packet, address):
        self.sent.append((packet, address))
        _, _, _, packet_id, seq = struct.unpack("!BBHHH", packet[:8])
        reply = self.respond(address[0], packet_id, seq)
        if reply is not None:
            self.feed(reply)
        return len(packet)

    async def sock_recvfrom(self, sock, bufsize):
        data = await self.inbox.get()
        self.received += 1
        return data, ("0.0.0.0", 0)

    def installed(self, loop):
        stack = ExitStack()
        stack.enter_context(patch.object(loop, "sock_sendto", self.sock_sendto))
        stack.enter_context(patch.object(loop, "sock_recvfrom", self.sock_recvfrom))
        return stack


def fake_probe(status_for=None, delay_for=None, rtt_for=None):
    """Build a probe coroutine that never touches the network.

    ``status_for``, ``delay_for`` and ``rtt_for`` map ``(host, seq)`` to the
    status, delay in seconds and round-trip time of the probe. The keyword
    arguments of each call are kept in ``settings``.
    """
    calls = []
    settings = []

    async def probe(host, timeout, seq, **kwargs):
        calls.append((host, seq))
        settings.append(dict(kwargs, timeout=timeout))
        delay = delay_for(host, seq) if delay_for else 0
        if delay:
            await asyncio.sleep(delay)
        status = status_for(host, seq) if status_for else EchoStatus.Success
        if status is EchoStatus.Success:
            rtt = rtt_for(host, seq) if rtt_for else 1.0
            return ProbeOutcome(host, status, rtt=rtt)
        return ProbeOutcome(host, status)

    probe.calls = calls
    probe.settings = settings
    return probe
