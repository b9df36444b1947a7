#!/usr/bin/env python3
"""
servo_probe.py — Minimal ESP32 servo endpoint smoke test.

Sends a single switch command (or a raw angle array) to the servo endpoint
and prints the outcome, using the same dispatcher and timeout as the panel.
Handy for checking wiring, Wi-Fi and the ESP32 sketch before opening the UI.

Examples:
    # Turn switch 3 on
    python3 servo_probe.py --esp http://192.168.81.215 --switch 3 --on

    # Turn switch 3 off using the angle encoding
    python3 servo_probe.py --esp http://192.168.81.215 --switch 3 --off --encoding angle

    # Send a raw angle array (button-pad style)
    python3 servo_probe.py --esp http://192.168.81.215 --angles 0 45 90

Exit codes: 0 success, 1 failure, 2 timeout / usage error.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import Optional

import httpx

from servo_dispatch import ENCODINGS, ServoDispatcher
from servo_types import CommandOutcome, Direction, OutcomeKind
from state import PanelState

EXIT_CODES = {OutcomeKind.SUCCESS: 0, OutcomeKind.FAILURE: 1, OutcomeKind.TIMEOUT: 2}


async def probe(
    dispatcher: ServoDispatcher,
    *,
    switch: Optional[int] = None,
    direction: Optional[Direction] = None,
    angles: Optional[list[int]] = None,
) -> CommandOutcome:
    """Send one command and close the dispatcher afterwards."""
    try:
        if angles:
            return await dispatcher.send_angles(angles)
        if switch is None or direction is None:
            raise ValueError("need a switch and a direction, or an angle array")
        return await dispatcher.dispatch(switch, direction)
    finally:
        await dispatcher.aclose()


def describe(outcome: CommandOutcome) -> str:
    if outcome.kind is OutcomeKind.SUCCESS:
        return f"OK: {outcome.detail}"
    if outcome.kind is OutcomeKind.TIMEOUT:
        return "Timeout: ESP32 not responding"
    return f"Failed: {outcome.reason}"


def parse_args(argv: list[str]) -> argparse.Namespace:
    """Parse command-line arguments for servo_probe.py and return a Namespace."""
    p = argparse.ArgumentParser(description="Send one command to an ESP32 servo endpoint.")
    p.add_argument(
        "--esp",
        default=PanelState.get_config("ESP_BASE_URL"),
        help="ESP32 base URL (default: from config)",
    )
    p.add_argument("--path", default=PanelState.get_config("SERVO_PATH"), help="Command path (default: /servo)")
    p.add_argument("-s", "--switch", type=int, help="Switch number")
    group = p.add_mutually_exclusive_group()
    group.add_argument("--on", action="store_true", help="Switch on (RIGHT)")
    group.add_argument("--off", action="store_true", help="Switch off (LEFT)")
    p.add_argument("--angles", type=int, nargs="+", help="Send a raw angle array instead")
    p.add_argument(
        "--encoding",
        choices=ENCODINGS,
        default=PanelState.get_config("STATE_ENCODING"),
        help="Body encoding for switch commands (default: switch)",
    )
    p.add_argument(
        "--timeout",
        type=float,
        default=float(PanelState.get_config("COMMAND_TIMEOUT_SEC")),
        help="Timeout in seconds (default: 4)",
    )
    p.add_argument("-v", "--verbose", action="store_true", help="Show request/response details.")
    return p.parse_args(argv)


def main(argv: list[str], client: Optional[httpx.AsyncClient] = None) -> int:
    """Entry point: parse args, send the command, print the outcome, return exit code."""
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="[%(asctime)s] %(levelname)s - %(message)s",
    )

    direction = None
    if args.on:
        direction = Direction.RIGHT
    elif args.off:
        direction = Direction.LEFT

    if not args.angles and (args.switch is None or direction is None):
        print("Error: give --switch with --on/--off, or --angles.", file=sys.stderr)
        return 2

    try:
        dispatcher = ServoDispatcher(
            args.esp,
            path=args.path,
            timeout=args.timeout,
            encoding=args.encoding,
            on_angle=int(PanelState.get_config("ON_ANGLE")),
            off_angle=int(PanelState.get_config("OFF_ANGLE")),
            client=client,
        )
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    outcome = asyncio.run(probe(dispatcher, switch=args.switch, direction=direction, angles=args.angles))
    print(describe(outcome))
    return EXIT_CODES[outcome.kind]


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
