"""Command-line interface for repeated probing."""

import argparse
import logging
import sys

from .display import format_header, format_report
from .echo import PERMISSION_DENIED
from .errors import NetProbeError
from .logger import create_logger
from .loop import IterationConfig, probe


def build_parser():
    parser = argparse.ArgumentParser(
        prog="netprobe",
        description="Probe hosts with ICMP echo requests and report latency and loss.",
    )
    parser.add_argument(
        "hosts",
        nargs="+",
        metavar="host",
        help="Hostnames or IP addresses to probe",
    )
    parser.add_argument(
        "-n",
        "--echo-requests",
        type=int,
        default=4,
        help="Echo requests per host per round (default: 4)",
    )
    rounds = parser.add_mutually_exclusive_group()
    rounds.add_argument(
        "-c",
        "--count",
        type=int,
        default=None,
        help="Number of rounds to run (default: 1)",
    )
    rounds.add_argument(
        "-t",
        "--continuous",
        action="store_true",
        help="Keep probing until interrupted",
    )
    parser.add_argument(
        "-i",
        "--interval",
        type=float,
        default=1.0,
        help="Seconds between the start of two rounds (default: 1)",
    )
    parser.add_argument(
        "-w",
        "--timeout",
        type=float,
        default=5.0,
        help="Timeout in seconds for each echo request (default: 5)",
    )
    parser.add_argument(
        "-s",
        "--size",
        type=int,
        default=56,
        help="Payload size in bytes (default: 56)",
    )
    parser.add_argument(
        "-q",
        "--quiet",
        action="store_true",
        help="Only print whether each host was online in the last round",
    )
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser


def main(argv=None):
    """Main entry point for the CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    create_logger(logging.DEBUG if args.verbose else logging.WARNING)

    try:
        config = IterationConfig(
            echo_requests=args.echo_requests,
            timeout=args.timeout,
            interval=args.interval,
            count=args.count,
            continuous=args.continuous,
            payload_size=args.size,
        )
    except NetProbeError as e:
        print(f"{parser.prog}: {e}", file=sys.stderr)
        sys.exit(2)

    reports = []
    try:
        for round_number, reports in probe(args.hosts, config):
            if any(r.error == PERMISSION_DENIED for r in reports):
                print(f"{parser.prog}: {PERMISSION_DENIED}", file=sys.stderr)
                sys.exit(1)
            if args.quiet:
                continue
            print(format_header(round_number, config), end="", flush=True)
            for report in reports:
                print(format_report(report), end="", flush=True)

    except KeyboardInterrupt:
        print("\n--- probing interrupted ---")
        sys.exit(130)

    if args.quiet:
        for report in reports:
            print(report.online)

    sys.exit(0 if reports and all(r.online for r in reports) else 1)


if __name__ == "__main__":
    main()
