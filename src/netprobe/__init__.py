"""ICMP reachability and latency probing."""

__version__ = "0.1.0"

from .addressing import AddressRange, expand_range
from .echo import EchoSession, ProbeOutcome, echo_probe
from .errors import ConfigurationConflict, InvalidRangeInput, NetProbeError
from .icmp import EchoStatus
from .loop import IterationConfig, probe
from .scheduler import ProbeScheduler, ResolutionCache
from .stats import HostReport, aggregate
from .sweep import sweep

__all__ = [
    "probe",
    "sweep",
    "expand_range",
    "echo_probe",
    "EchoSession",
    "aggregate",
    "AddressRange",
    "IterationConfig",
    "ProbeScheduler",
    "ResolutionCache",
    "ProbeOutcome",
    "HostReport",
    "EchoStatus",
    "NetProbeError",
    "InvalidRangeInput",
    "ConfigurationConflict",
]
