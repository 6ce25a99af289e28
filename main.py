#!/usr/bin/env python3
"""
Main entry point for calendar-mcp when run from a source checkout.

    python main.py list-accounts
    python main.py events --start 2024-05-01 --end 2024-05-08

Equivalent to the installed `calendar-mcp` console script.
See --help for available options.
"""

import logging
import signal
import sys

from calendar_mcp.cli import main


def _setup_signal_handlers() -> None:
    """Exit with the conventional 128+N status on termination signals."""
    def signal_handler(signum, frame):
        signal_name = signal.Signals(signum).name
        logging.getLogger('calendar_mcp').warning(f"Received {signal_name}, shutting down")
        sys.exit(130 if signum == signal.SIGINT else 128 + signum)

    if hasattr(signal, 'SIGTERM'):
        signal.signal(signal.SIGTERM, signal_handler)


if __name__ == '__main__':
    _setup_signal_handlers()
    main()
