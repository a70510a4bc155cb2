"""Command-line entry point for the RackPower UPS client."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from .catalog import CONTROL_COMMANDS
from .client import RackPowerClient
from .config import Config, load_config
from .directory import RegisterDirectory
from .errors import UpsError


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Poll and control a RackPower UPS over MODBUS RTU")
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to the YAML configuration file",
    )
    parser.add_argument("--port", help="Serial port or pyserial URL (overrides the configuration)")
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity",
    )

    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("status", help="Print every reading")
    lookup = sub.add_parser("lookup", help="Translate a register address or name")
    lookup.add_argument("query", help="Register address (decimal or 0x hex) or register name")
    backlight = sub.add_parser("backlight", help="Set the backlight timer")
    backlight.add_argument("minutes", type=int)
    command = sub.add_parser("command", help="Send a control command")
    command.add_argument("name", choices=sorted(CONTROL_COMMANDS))
    return parser


def _lookup(query: str) -> str:
    directory = RegisterDirectory.default()
    try:
        address = int(query, 0)
    except ValueError:
        address = directory.lookup_by_name(query)
    return f"{address} {directory.lookup_by_address(address)}"


def main(argv: Optional[List[str]] = None) -> int:
    args = _build_parser().parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level), format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    if args.command == "lookup":
        print(_lookup(args.query))
        return 0

    try:
        config = load_config(args.config) if args.config else Config()
        if args.port:
            config.serial.port = args.port
        with RackPowerClient.from_config(config) as client:
            if args.command == "status":
                for field, value in client.snapshot().items():
                    print(f"{field}: {value}")
                print(f"buffer_underruns: {client.buffer_underruns} ({client.underrun_operation or '-'})")
            elif args.command == "backlight":
                client.set_backlight_timer(args.minutes)
            elif args.command == "command":
                registers = client.send_command(args.name)
                if registers:
                    print(" ".join(f"{value:04X}" for value in registers))
    except UpsError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
