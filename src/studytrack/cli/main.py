# src/studytrack/cli/main.py

"""
CLI entrypoint.

Initializes logging, builds the StudyEngine, then starts:
- background loops (autosave, archive policy) in a background thread,
- console REPL in the main thread (optional).
"""

from __future__ import annotations

import contextlib
import logging
import signal
import threading

from ..cli.bootstrap import create_engine
from ..config import get_settings
from ..connectors.console_connector import run_console_loop
from ..core.engine import StudyEngine
from ..core.scheduler import start_in_background
from ..errors import PersistenceError
from ..logging_setup import setup_logging

logger = logging.getLogger(__name__)


def _shutdown(engine: StudyEngine) -> None:
    """Final flush; failures are logged, the process still exits."""
    try:
        engine.flush(raise_errors=True)
    except PersistenceError:
        logger.error("Unsaved changes could not be written: %s", engine.last_persistence_error)


def main() -> None:
    settings = get_settings()

    # choose console log level from settings.log_level
    level_name = str(settings.log_level).upper()
    console_level = getattr(logging, level_name, logging.INFO)

    setup_logging(log_dir=settings.data_dir, console_level=console_level)

    logger.info("Starting %s...", settings.app_name)

    # IMPORTANT: reuse same settings object
    engine = create_engine(settings=settings)

    runner = start_in_background(
        engine,
        autosave_seconds=settings.autosave_seconds,
        archive_check_seconds=settings.archive_check_seconds,
    )

    # Use an Event so main can wait without a busy while-loop.
    stop_main = threading.Event()

    def _handle_signal(signum, _frame) -> None:
        logger.info("Signal %s received, shutting down...", signum)
        stop_main.set()

    # Some platforms may not support SIGTERM.
    with contextlib.suppress(ValueError, OSError, AttributeError):
        signal.signal(signal.SIGTERM, _handle_signal)
        if not settings.console_enabled:
            signal.signal(signal.SIGINT, _handle_signal)

    try:
        if settings.console_enabled:
            run_console_loop(engine)
            stop_main.set()
        else:
            logger.info("Console disabled. Running background loops only. Press Ctrl+C to stop.")
            stop_main.wait()

    finally:
        if runner is not None:
            runner.stop()
            runner.join(timeout=10.0)

        _shutdown(engine)
        logger.info("Bye.")


if __name__ == "__main__":
    main()
