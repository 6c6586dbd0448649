"""
Command-line launcher for the POS Printer service.

Runs the Flask development server (threaded) in front of the print-job
manager. Use --simulate to run without CUPS against in-memory printers.
"""

import argparse
import logging
import os
import sys

from pos_printer import create_app
from pos_printer.core.config import get_settings
from pos_printer.core.errors import SpoolerUnavailable


def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="POS receipt printer service (ESC/POS over CUPS)",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "--host",
        default=None,
        help="Host to bind to (default: server.host from config, 127.0.0.1)",
    )

    parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Port to bind to (default: server.port from config, 8080)",
    )

    parser.add_argument(
        "--config",
        default=None,
        help="Path to the JSON config file (default: $POSPRINTER_CONFIG_PATH or XDG config dir)",
    )

    parser.add_argument(
        "--simulate",
        action="store_true",
        help="Use the simulated spooler instead of CUPS",
    )

    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )

    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    if args.debug:
        os.environ.setdefault("POSPRINTER_LOG_LEVEL", "DEBUG")

    overrides = {"printers": {"spooler": "simulated"}} if args.simulate else None
    logger = logging.getLogger("pos_printer.launcher")

    try:
        settings = get_settings(args.config, overrides=overrides)
        app = create_app(config_overrides=overrides, settings_path=args.config)
    except SpoolerUnavailable as e:
        logging.basicConfig(level=logging.INFO)
        logger.error(f"Cannot start: {e}")
        logger.error("Install and start CUPS, or run with --simulate")
        return 1
    except ValueError as e:
        logging.basicConfig(level=logging.INFO)
        logger.error(f"Invalid configuration: {e}")
        return 2

    host = args.host or settings["server"]["host"]
    port = args.port or int(settings["server"]["port"])
    logger.info(f"Starting POS Printer service on http://{host}:{port}")
    logger.info("Press Ctrl+C to stop the server")
    try:
        app.run(host=host, port=port, debug=False, threaded=True)
    except KeyboardInterrupt:
        logger.info("Shutting down POS Printer service...")
    finally:
        app.extensions["pos_printer"]["manager"].stop_refresher()
    return 0


if __name__ == "__main__":
    sys.exit(main())
