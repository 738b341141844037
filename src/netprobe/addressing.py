"""IPv4 address range expansion.

Turns a start/end pair or an address/mask pair into the ordered list of
addresses to probe. Addresses are produced lazily, so a /8 costs nothing
until someone iterates it.
"""

from dataclasses import dataclass
from ipaddress import AddressValueError, IPv4Address
from typing import Iterator, Optional

from .errors import InvalidRangeInput

ALL_ONES = 0xFFFFFFFF


def parse_address(text: str) -> int:
    """Parse a dotted-quad IPv4 address into an unsigned 32-bit integer."""
    try:
        return int(IPv4Address(text.strip()))
    except (AddressValueError, AttributeError):
        raise InvalidRangeInput(f"Invalid IPv4 address: {text!r}")


def format_address(value: int) -> str:
    """Convert an unsigned 32-bit integer back to dotted-quad."""
    return str(IPv4Address(value))


def prefix_to_mask(prefix_len: int) -> int:
    if not 0 <= prefix_len <= 32:
        raise InvalidRangeInput(f"Invalid prefix length: {prefix_len}")
    return (ALL_ONES << (32 - prefix_len)) & ALL_ONES


def parse_mask(text: str) -> int:
    """Parse a subnet mask given as dotted-quad or as a prefix length.

    ``"255.255.255.0"``, ``"24"`` and ``"/24"`` all give the same mask.
    """
    text = text.strip()
    prefix = text[1:] if text.startswith("/") else text
    if prefix.isdigit():
        return prefix_to_mask(int(prefix))

    try:
        mask = int(IPv4Address(text))
    except AddressValueError:
        raise InvalidRangeInput(f"Invalid subnet mask: {text!r}")

    # Host bits must be a contiguous run of ones at the low end.
    host_bits = ~mask & ALL_ONES
    if host_bits & (host_bits + 1):
        raise InvalidRangeInput(f"Non-contiguous subnet mask: {text!r}")
    return mask


@dataclass(frozen=True)
class AddressRange:
    """Inclusive range of IPv4 addresses, held as integers.

    Iterating yields dotted-quad strings in ascending order. Every call to
    ``iter()`` starts over, so the same range can be walked several times.
    A range whose start is past its end is empty.
    """

    start: int
    end: int

    @classmethod
    def from_bounds(cls, start: str, end: str) -> "AddressRange":
        """Range covering ``start`` through ``end``, both included."""
        return cls(parse_address(start), parse_address(end))

    @classmethod
    def from_mask(
        cls,
        address: str,
        mask: Optional[str] = None,
        include_network_and_broadcast: bool = False,
    ) -> "AddressRange":
        """Range of the block containing ``address``.

        The mask is either passed separately or embedded in the address as
        ``a.b.c.d/len``. Network and broadcast addresses are left out unless
        asked for.
        """
        if "/" in address:
            if mask is not None:
                raise InvalidRangeInput(
                    f"Mask given twice: {address!r} and {mask!r}"
                )
            address, mask = address.split("/", 1)
        if mask is None:
            raise InvalidRangeInput(f"No subnet mask given for {address!r}")

        addr = parse_address(address)
        mask_int = parse_mask(mask)

        network = addr & mask_int
        broadcast = addr | (~mask_int & ALL_ONES)

        if include_network_and_broadcast:
            return cls(network, broadcast)
        return cls(network + 1, broadcast - 1)

    def __iter__(self) -> Iterator[str]:
        for value in range(self.start, self.end + 1):
            yield format_address(value)

    def __len__(self) -> int:
        return max(0, self.end - self.start + 1)

    def __contains__(self, address) -> bool:
        try:
            value = parse_address(address)
        except InvalidRangeInput:
            return False
        return self.start <= value <= self.end

    def __str__(self) -> str:
        if not len(self):
            return "(empty)"
        return f"{format_address(self.start)}-{format_address(self.end)}"


def expand_range(
    start: Optional[str] = None,
    end: Optional[str] = None,
    address: Optional[str] = None,
    mask: Optional[str] = None,
    include_network_and_broadcast: bool = False,
) -> AddressRange:
    """Build an ``AddressRange`` from either a start/end pair or an address/mask.

    All input is parsed up front; nothing is returned for malformed input.
    """
    bounds_given = start is not None or end is not None
    if bounds_given and address is not None:
        raise InvalidRangeInput("Give either start/end or address/mask, not both")

    if bounds_given:
        if start is None or end is None:
            raise InvalidRangeInput("Both start and end addresses are required")
        return AddressRange.from_bounds(start, end)

    if address is None:
        raise InvalidRangeInput("No address range given")
    return AddressRange.from_mask(address, mask, include_network_and_broadcast)
