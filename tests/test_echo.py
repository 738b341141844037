"""Tests for echo module."""

import asyncio
import socket
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from netprobe.echo import (
    PERMISSION_DENIED,
    EchoSession,
    ProbeOutcome,
    default_packet_id,
    echo_probe,
)
from netprobe.icmp import EchoStatus
from tests.helpers import FakeIcmpNetwork, echo_reply, icmp_error

ADDRINFO = [(socket.AF_INET, socket.SOCK_RAW, 1, "", ("8.8.8.8", 0))]


def run(main, network=None, resolve=None):
    """Run ``main()`` with the event loop's socket calls faked."""

    async def wrapper():
        loop = asyncio.get_running_loop()
        with (network or FakeIcmpNetwork()).installed(loop), patch.object(
            loop, "getaddrinfo", resolve or AsyncMock(return_value=ADDRINFO)
        ):
            return await main()

    return asyncio.run(wrapper())


def silent(address, packet_id, seq):
    return None


@pytest.fixture
def opener():
    with patch("netprobe.echo.open_icmp_socket") as mock_open:
        mock_open.return_value = MagicMock()
        yield mock_open


@pytest.fixture
def mock_sock(opener):
    return opener.return_value


class TestProbeOutcome:
    """Tests for ProbeOutcome dataclass."""

    def test_default_values(self):
        """Test ProbeOutcome default values."""
        outcome = ProbeOutcome("example.com", EchoStatus.TimedOut)
        assert outcome.rtt is None
        assert outcome.error is None
        assert outcome.succeeded is False

    def test_succeeded(self):
        """Test success flag."""
        assert ProbeOutcome("h", EchoStatus.Success, rtt=1.5).succeeded is True


class TestEchoProbe:
    """Tests for echo_probe coroutine."""

    def test_success(self, mock_sock):
        """Test a matching echo reply."""
        network = FakeIcmpNetwork()

        outcome = run(lambda: echo_probe("8.8.8.8", 1.0, 1, packet_id=1234), network)

        assert outcome.status is EchoStatus.Success
        assert outcome.host == "8.8.8.8"
        assert outcome.rtt is not None and outcome.rtt >= 0
        [(packet, address)] = network.sent
        assert address == ("8.8.8.8", 0)
        assert len(packet) == 64
        mock_sock.close.assert_called_once()

    def test_skips_replies_to_other_requests(self, mock_sock):
        """Test replies with another sequence, identifier or address are ignored."""
        network = FakeIcmpNetwork()

        async def main():
            network.feed(echo_reply(1234, 2))
            network.feed(echo_reply(4321, 1))
            network.feed(echo_reply(1234, 1, source="1.1.1.1"))
            network.feed(icmp_error(3, 1, 1234, 1, destination="9.9.9.9"))
            return await echo_probe("8.8.8.8", 1.0, 1, packet_id=1234)

        outcome = run(main, network)

        assert outcome.status is EchoStatus.Success
        assert network.received == 5

    def test_destination_unreachable(self, mock_sock):
        """Test an ICMP error quoting our request."""
        network = FakeIcmpNetwork(
            respond=lambda address, packet_id, seq: icmp_error(
                3, 1, packet_id, seq, destination=address
            )
        )

        outcome = run(lambda: echo_probe("8.8.8.8", 1.0, 1, packet_id=1234), network)

        assert outcome.status is EchoStatus.DestinationHostUnreachable
        assert outcome.rtt is None

    def test_timeout(self, mock_sock):
        """Test no reply within the timeout."""
        network = FakeIcmpNetwork(respond=silent)

        outcome = run(lambda: echo_probe("8.8.8.8", 0.05, 1), network)

        assert outcome.status is EchoStatus.TimedOut
        mock_sock.close.assert_called_once()

    def test_cancelled_closes_socket(self, mock_sock):
        """Test the socket is released when the caller gives up on the request."""
        network = FakeIcmpNetwork(respond=silent)

        async def main():
            task = asyncio.ensure_future(echo_probe("8.8.8.8", 10, 1))
            await asyncio.sleep(0.01)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        run(main, network)

        assert len(network.sent) == 1
        mock_sock.close.assert_called_once()

    def test_resolves_host_name(self, mock_sock):
        """Test the request goes to the resolved address."""
        network = FakeIcmpNetwork()

        outcome = run(lambda: echo_probe("dns.example", 1.0, 1), network)

        assert outcome.status is EchoStatus.Success
        assert outcome.host == "dns.example"
        assert network.sent[0][1] == ("8.8.8.8", 0)

    def test_known_address_skips_resolution(self, mock_sock):
        """Test a caller-supplied address is used as is."""
        network = FakeIcmpNetwork()
        resolve = AsyncMock(return_value=ADDRINFO)

        outcome = run(
            lambda: echo_probe("dns.example", 1.0, 1, address="192.0.2.9"),
            network,
            resolve,
        )

        assert outcome.status is EchoStatus.Success
        assert network.sent[0][1] == ("192.0.2.9", 0)
        resolve.assert_not_awaited()

    def test_resolution_failure(self, mock_sock):
        """Test a host name that does not resolve."""
        network = FakeIcmpNetwork()
        resolve = AsyncMock(side_effect=socket.gaierror("Name resolution failed"))

        outcome = run(lambda: echo_probe("nowhere.test", 1.0, 1), network, resolve)

        assert outcome.status is EchoStatus.Unknown
        assert "Name resolution failed" in outcome.error
        assert network.sent == []

    def test_send_failure(self, mock_sock):
        """Test socket errors while sending."""

        async def main():
            loop = asyncio.get_running_loop()
            with patch.object(
                loop, "sock_sendto", AsyncMock(side_effect=OSError("Network is down"))
            ):
                return await echo_probe("8.8.8.8", 1.0, 1, packet_id=1234)

        outcome = run(main)

        assert outcome.status is EchoStatus.Unknown
        assert outcome.error == "Network is down"
        mock_sock.close.assert_called_once()

    def test_permission_denied(self, opener):
        """Test probing without root privileges."""
        opener.side_effect = PermissionError()

        outcome = run(lambda: echo_probe("8.8.8.8", 1.0, 1))

        assert outcome.status is EchoStatus.Unknown
        assert outcome.error == PERMISSION_DENIED

    @patch("netprobe.echo.os.getpid", return_value=0x12345)
    def test_default_packet_id(self, mock_getpid):
        """Test the identifier defaults to the low 16 bits of the pid."""
        assert default_packet_id() == 0x2345


class TestEchoSession:
    """Tests for EchoSession."""

    def test_one_socket_for_many_requests(self, opener):
        """Test concurrent requests share one socket and one reader."""
        network = FakeIcmpNetwork()
        addresses = [f"10.0.0.{n}" for n in range(1, 51)]

        async def main():
            async with EchoSession(packet_id=1234) as session:
                return await asyncio.gather(
                    *(
                        echo_probe(address, 1.0, seq, session=session, address=address)
                        for seq, address in enumerate(addresses, 1)
                    )
                )

        outcomes = run(main, network)

        assert [o.host for o in outcomes] == addresses
        assert all(o.status is EchoStatus.Success for o in outcomes)
        assert opener.call_count == 1
        opener.return_value.close.assert_called_once()
        assert network.received == 50

    def test_same_sequence_to_different_addresses(self, opener):
        """Test a wrapped sequence number still reaches the right request."""
        network = FakeIcmpNetwork(
            respond=lambda address, packet_id, seq: (
                echo_reply(packet_id, seq, source=address)
                if address == "10.0.0.1"
                else icmp_error(3, 1, packet_id, seq, destination=address)
            )
        )

        async def main():
            async with EchoSession(packet_id=1234) as session:
                return await asyncio.gather(
                    session.request("10.0.0.1", 7),
                    session.request("10.0.0.2", 7),
                )

        (first, rtt), (second, no_rtt) = run(main, network)

        assert first is EchoStatus.Success
        assert rtt is not None
        assert second is EchoStatus.DestinationHostUnreachable
        assert no_rtt is None

    def test_receive_failure(self, opener):
        """Test a broken socket fails the requests waiting on it."""
        network = FakeIcmpNetwork(respond=silent)

        async def main():
            loop = asyncio.get_running_loop()
            with patch.object(
                loop, "sock_recvfrom", AsyncMock(side_effect=OSError("Socket closed"))
            ):
                async with EchoSession(packet_id=1234) as session:
                    return await echo_probe("8.8.8.8", 1.0, 1, session=session)

        outcome = run(main, network)

        assert outcome.status is EchoStatus.Unknown
        assert outcome.error == "Socket closed"

    def test_open_failure_remembered(self, opener):
        """Test a socket that cannot be opened is only tried once."""
        opener.side_effect = PermissionError()

        async def main():
            async with EchoSession() as session:
                outcomes = await asyncio.gather(
                    echo_probe("8.8.8.8", 1.0, 1, session=session),
                    echo_probe("8.8.4.4", 1.0, 2, session=session),
                )
                return outcomes, session

        outcomes, session = run(main)

        assert [o.error for o in outcomes] == [PERMISSION_DENIED] * 2
        assert isinstance(session.open_error, PermissionError)
        assert opener.call_count == 1

    def test_close_without_requests(self, opener):
        """Test a session that never sent anything opens no socket."""

        async def main():
            async with EchoSession():
                pass

        run(main)

        opener.assert_not_called()
