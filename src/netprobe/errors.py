"""Exceptions raised before any probing starts.

Per-probe failures never surface as exceptions; they become
``ProbeOutcome`` values instead.
"""


class NetProbeError(Exception):
    """Base class for netprobe errors."""


class InvalidRangeInput(NetProbeError, ValueError):
    """Malformed address, mask or CIDR string."""


class ConfigurationConflict(NetProbeError, ValueError):
    """Mutually exclusive options, or a value outside its valid range."""
