#!/usr/bin/env python3
"""
Birch VFD Display Demo

Sends a short greeting, then a sentence too long for one line so the
layout engine has to wrap it onto the second row.

Hardware Requirements:
- Birch-compatible VFD display (20x2 characters by default)
- Serial connection at 9600 baud, 8N1
"""

import time
import logging
import argparse
from birch_vfd import BirchVFD, BirchVFDError

logger = logging.getLogger('BirchVFD_Demo')
logger.setLevel(logging.INFO)
# birch_vfd configures the root logger on import; the demo keeps its own tag
logger.propagate = False
_handler = logging.StreamHandler()
_handler.setFormatter(logging.Formatter(
    '%(asctime)s %(levelname)-8s [DEMO] %(message)s',
    datefmt='%H:%M:%S'
))
logger.addHandler(_handler)

GREETING = "Epale!"
SENTENCE = "Rust speaking serial to a *VFD* :)"


def run_demo(display: BirchVFD, pause: float = 2.0) -> None:
    """Show the greeting, pause, then the wrapped sentence."""
    display.clear()
    display.set_cursor(0, 0)
    display.write_line(GREETING)
    logger.info(f"Observe: greeting (pausing {pause:.1f}s)")
    time.sleep(pause)

    display.clear()
    display.write_text(SENTENCE, wrap=True, truncate=True)
    logger.info(f"Sentence written, cursor now at {display.get_cursor()}")


def main(argv=None) -> int:
    """Main demo execution with CLI configuration."""
    parser = argparse.ArgumentParser(description="Birch VFD Display Demo")
    parser.add_argument('--port', default='/dev/ttyUSB0',
                        help='Serial port device')
    parser.add_argument('--baud', type=int, default=9600,
                        help='Baud rate (default: 9600)')
    parser.add_argument('--width', type=int, default=20,
                        help='Display columns (default: 20)')
    parser.add_argument('--height', type=int, default=2,
                        help='Display rows (default: 2)')
    parser.add_argument('--pause', type=float, default=2.0,
                        help='Seconds to show the greeting')
    parser.add_argument('--command-delay', type=float, default=0.0,
                        help='Base command delay in seconds')
    parser.add_argument('--verbose', action='store_true',
                        help='Enable verbose debug logging')

    args = parser.parse_args(argv)

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    logger.info(f"Port: {args.port} | Baud: {args.baud} | Size: {args.width}x{args.height}")

    try:
        with BirchVFD(
            args.port,
            width=args.width,
            height=args.height,
            baudrate=args.baud,
            debug=args.verbose,
            base_command_delay=args.command_delay,
        ) as display:
            logger.info("Device connected. Sending data...")
            run_demo(display, args.pause)
    except BirchVFDError as e:
        logger.error(f"Display error: {e}")
        return 1
    except KeyboardInterrupt:
        logger.info("Demo interrupted by user")
        return 130

    return 0


if __name__ == '__main__':
    raise SystemExit(main())
