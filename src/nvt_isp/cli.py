"""Command-line front end: ``nvt-isp``.

Example::

    nvt-isp -d /dev/ttyUSB0 -c rpd=1 -a firmware.bin -s
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import TextIO

from .config import (
    DEFAULT_SERIAL_DEVICE,
    PASSTHROUGH_CHUNK,
    PASSTHROUGH_TIMEOUT,
    SerialSettings,
    SessionOptions,
)
from .errors import IspError
from .models.config import CONFIG_FIELDS, ConfigChange
from .programmer.retry import connect_policy
from .programmer.session import DeviceSession
from .programmer.transfer import load_image
from .transport.serial_connection import SerialConnection

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="nvt-isp",
        description="ISP programmer for Nuvoton N76E003",
    )
    parser.add_argument(
        "-d", "--serial-device",
        default=DEFAULT_SERIAL_DEVICE,
        help=f"serial device to use (default: {DEFAULT_SERIAL_DEVICE})",
    )
    parser.add_argument(
        "-a", "--aprom",
        metavar="FILE",
        help="binary APROM file to flash",
    )
    parser.add_argument(
        "-c", "--config",
        action="append",
        default=[],
        metavar="NAME=VALUE[,...]",
        help="set config bits; known names: " + ", ".join(CONFIG_FIELDS),
    )
    parser.add_argument(
        "-r", "--remain-isp",
        action="store_true",
        help="remain in ISP mode when exiting",
    )
    parser.add_argument(
        "-s", "--read-serial",
        action="store_true",
        help="read serial output after programming",
    )
    parser.add_argument(
        "--connect-attempts",
        type=int,
        default=None,
        metavar="N",
        help="give up after N CONNECT probes (default: keep trying)",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="log every packet",
    )
    return parser


def echo_serial(conn: SerialConnection, out: TextIO | None = None) -> None:
    """Copy whatever the application prints to ``out`` until interrupted."""
    out = out or sys.stdout
    try:
        while True:
            data = conn.read_available(PASSTHROUGH_CHUNK, PASSTHROUGH_TIMEOUT)
            if data:
                out.write(data.decode("latin-1"))
                out.flush()
    except KeyboardInterrupt:
        logger.info("Stopped reading serial")


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(message)s",
    )

    try:
        change = ConfigChange.parse(args.config)
        policy = connect_policy(args.connect_attempts)
    except ValueError as e:
        parser.error(str(e))

    try:
        image = load_image(args.aprom) if args.aprom else None
        options = SessionOptions(
            config_change=change,
            image=image,
            remain_isp=args.remain_isp,
        )

        with SerialConnection(SerialSettings(port=args.serial_device)) as conn:
            logger.info("Ready to connect")
            conn.pulse_reset()
            session = DeviceSession(conn, connect_policy=policy)
            session.run(options)
            logger.info("Done")

            if args.read_serial:
                echo_serial(conn)
    except IspError as e:
        logger.error("%s", e)
        return 1

    return 0
