"""Command-line interface for sweeping an address range."""

import argparse
import logging
import sys

from .addressing import expand_range
from .display import format_report, format_summary
from .echo import PERMISSION_DENIED
from .errors import NetProbeError
from .logger import create_logger
from .loop import IterationConfig
from .sweep import sweep


def build_parser():
    parser = argparse.ArgumentParser(
        prog="netsweep",
        description="Probe every address of a range or subnet once.",
    )
    parser.add_argument(
        "addresses",
        nargs="+",
        metavar="address",
        help="START END, or ADDRESS/LEN, or ADDRESS with --mask",
    )
    parser.add_argument(
        "-m",
        "--mask",
        default=None,
        help="Subnet mask as dotted-quad or prefix length",
    )
    parser.add_argument(
        "--include-network-and-broadcast",
        action="store_true",
        help="Also probe the network and broadcast addresses",
    )
    parser.add_argument(
        "--online-only",
        action="store_true",
        help="Only list hosts that answered",
    )
    parser.add_argument(
        "-n",
        "--echo-requests",
        type=int,
        default=1,
        help="Echo requests per address (default: 1)",
    )
    parser.add_argument(
        "-w",
        "--timeout",
        type=float,
        default=1.0,
        help="Timeout in seconds for each echo request (default: 1)",
    )
    parser.add_argument(
        "-s",
        "--size",
        type=int,
        default=56,
        help="Payload size in bytes (default: 56)",
    )
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser


def _address_range(parser, args):
    if len(args.addresses) > 2:
        parser.error("expected START END, or a single ADDRESS")
    if len(args.addresses) == 2:
        if args.mask is not None:
            parser.error("--mask cannot be used with a START END pair")
        start, end = args.addresses
        return expand_range(start=start, end=end)
    return expand_range(
        address=args.addresses[0],
        mask=args.mask,
        include_network_and_broadcast=args.include_network_and_broadcast,
    )


def main(argv=None):
    """Main entry point for the CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    create_logger(logging.DEBUG if args.verbose else logging.WARNING)

    try:
        address_range = _address_range(parser, args)
        config = IterationConfig(
            echo_requests=args.echo_requests,
            timeout=args.timeout,
            payload_size=args.size,
        )
    except NetProbeError as e:
        print(f"{parser.prog}: {e}", file=sys.stderr)
        sys.exit(2)

    print(f"Sweeping {address_range} ({len(address_range)} addresses)", flush=True)

    try:
        reports = sweep(address_range, config, online_only=args.online_only)
    except KeyboardInterrupt:
        print("\n--- sweep interrupted ---")
        sys.exit(130)

    if any(r.error == PERMISSION_DENIED for r in reports):
        print(f"{parser.prog}: {PERMISSION_DENIED}", file=sys.stderr)
        sys.exit(1)

    for report in reports:
        print(format_report(report), end="", flush=True)
    print(format_summary(reports), end="")
    sys.exit(0)


if __name__ == "__main__":
    main()
