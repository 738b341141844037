"""ICMP echo wire format.

Building echo requests and making sense of whatever comes back on a raw
ICMP socket: echo replies, and the error messages routers send on behalf
of a request that went nowhere.
"""

import struct
from dataclasses import dataclass
from enum import Enum
from typing import Optional

# ICMP types
ICMP_ECHO_REPLY = 0
ICMP_DEST_UNREACHABLE = 3
ICMP_ECHO_REQUEST = 8
ICMP_TIME_EXCEEDED = 11
ICMP_PARAMETER_PROBLEM = 12

ICMP_HEADER_SIZE = 8
DEFAULT_PAYLOAD_SIZE = 56
# 65535 minus the IP (20) and ICMP (8) headers
MAX_PAYLOAD_SIZE = 65507


class EchoStatus(str, Enum):
    Success = "Success"
    TimedOut = "TimedOut"
    DestinationNetworkUnreachable = "DestinationNetworkUnreachable"
    DestinationHostUnreachable = "DestinationHostUnreachable"
    DestinationProtocolUnreachable = "DestinationProtocolUnreachable"
    DestinationPortUnreachable = "DestinationPortUnreachable"
    DestinationProhibited = "DestinationProhibited"
    DestinationUnreachable = "DestinationUnreachable"
    TtlExpired = "TtlExpired"
    ParameterProblem = "ParameterProblem"
    Unknown = "Unknown"


UNREACHABLE_CODES = {
    0: EchoStatus.DestinationNetworkUnreachable,
    1: EchoStatus.DestinationHostUnreachable,
    2: EchoStatus.DestinationProtocolUnreachable,
    3: EchoStatus.DestinationPortUnreachable,
    9: EchoStatus.DestinationProhibited,
    10: EchoStatus.DestinationProhibited,
    13: EchoStatus.DestinationProhibited,
}


@dataclass(frozen=True)
class IcmpReply:
    """An ICMP message that answers one of our echo requests.

    ``source`` is the sender of the message. ``destination`` is the address
    the answered echo request was sent to: the sender itself for an echo
    reply, the quoted destination for an error message.
    """

    status: EchoStatus
    identifier: int
    sequence: int
    ttl: int
    source: Optional[str] = None
    destination: Optional[str] = None


def checksum(data: bytes) -> int:
    """Calculate ICMP checksum."""
    if len(data) % 2:
        data += b"\x00"

    total = sum(int.from_bytes(data[i : i + 2], "big") for i in range(0, len(data), 2))
    total = (total >> 16) + (total & 0xFFFF)
    total += total >> 16
    return ~total & 0xFFFF


def create_echo_request(
    packet_id: int, seq: int, payload_size: int = DEFAULT_PAYLOAD_SIZE
) -> bytes:
    """Create an ICMP echo request packet."""
    # ICMP Echo Request Packet Structure (RFC 792)
    #
    #  0                            15                               31
    # +-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+
    # |     Type (8)  |    Code (0)   |           Checksum            |
    # +-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+
    # |           Identifier          |        Sequence Number        |
    # +-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+
    # |                         Payload Data                          |
    # +-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+
    header = struct.pack("!BBHHH", ICMP_ECHO_REQUEST, 0, 0, packet_id, seq)
    payload = bytes(i & 0xFF for i in range(payload_size))

    header = struct.pack(
        "!BBHHH", ICMP_ECHO_REQUEST, 0, checksum(header + payload), packet_id, seq
    )
    return header + payload


def _ip_header_length(data: bytes) -> int:
    return (data[0] & 0x0F) * 4


def _error_status(icmp_type: int, code: int) -> EchoStatus:
    if icmp_type == ICMP_DEST_UNREACHABLE:
        return UNREACHABLE_CODES.get(code, EchoStatus.DestinationUnreachable)
    if icmp_type == ICMP_TIME_EXCEEDED:
        return EchoStatus.TtlExpired
    return EchoStatus.ParameterProblem


def parse_icmp_reply(data: bytes) -> Optional[IcmpReply]:
    """Parse a datagram read from a raw ICMP socket.

    Returns ``None`` for anything that is not an answer to an echo request:
    truncated or corrupt packets, our own outgoing requests looping back,
    and unrelated ICMP traffic.
    """
    if len(data) < 20:
        return None

    ihl = _ip_header_length(data)
    ttl = data[8]
    source = ".".join(str(b) for b in data[12:16])
    icmp = data[ihl:]
    if len(icmp) < ICMP_HEADER_SIZE or checksum(icmp) != 0:
        return None

    icmp_type, code, _, recv_id, seq = struct.unpack("!BBHHH", icmp[:ICMP_HEADER_SIZE])

    if icmp_type == ICMP_ECHO_REPLY:
        if code != 0:
            return None
        return IcmpReply(EchoStatus.Success, recv_id, seq, ttl, source, source)

    if icmp_type not in (
        ICMP_DEST_UNREACHABLE,
        ICMP_TIME_EXCEEDED,
        ICMP_PARAMETER_PROBLEM,
    ):
        return None

    # Error messages quote the offending IP header plus the first 8 bytes
    # of its payload, which is our echo request header.
    quoted = icmp[ICMP_HEADER_SIZE:]
    if len(quoted) < 20:
        return None
    quoted_icmp = quoted[_ip_header_length(quoted) :]
    if len(quoted_icmp) < ICMP_HEADER_SIZE:
        return None

    quoted_type, _, _, orig_id, orig_seq = struct.unpack(
        "!BBHHH", quoted_icmp[:ICMP_HEADER_SIZE]
    )
    if quoted_type != ICMP_ECHO_REQUEST:
        return None

    destination = ".".join(str(b) for b in quoted[16:20])
    return IcmpReply(
        _error_status(icmp_type, code), orig_id, orig_seq, ttl, source, destination
    )
