# src/studytrack/core/scheduler.py

from __future__ import annotations

"""
Background loops.

Two small polling loops driven by asyncio:
- run_archive_scheduler: applies the archive policy (when auto_archive is on)
  and rolls derived state over to the new day;
- run_autosave: flushes dirty canonical state to the StateRepo.

Both loops survive failures of a single tick (logged, then retried next tick).
To stop a loop, cancel the coroutine/task.
"""

import asyncio
import contextlib
import logging
import threading
from dataclasses import dataclass

from .engine import StudyEngine

logger = logging.getLogger(__name__)


async def archive_tick(engine: StudyEngine) -> None:
    try:
        result = engine.run_scheduled_archive()
    except Exception:
        logger.exception("scheduled archive run failed")
        return
    if result is not None and result.changed:
        logger.info(
            "Scheduled archive: archived=%d deleted=%d", len(result.archived_ids), len(result.deleted_ids)
        )


async def run_archive_scheduler(engine: StudyEngine, *, interval_seconds: float = 3600.0) -> None:
    """
    Every interval_seconds:
    - run the archive policy if the user enabled auto_archive
    - otherwise just refresh Stats/StreakState for the current day
    """
    sleep_s = max(1.0, float(interval_seconds))
    while True:
        await archive_tick(engine)
        await asyncio.sleep(sleep_s)


async def run_autosave(engine: StudyEngine, *, interval_seconds: float = 5.0) -> None:
    """Flush dirty state every interval_seconds. Failures stay in engine.last_persistence_error."""
    sleep_s = max(0.5, float(interval_seconds))
    try:
        while True:
            await asyncio.sleep(sleep_s)
            if engine.dirty and not engine.flush():
                logger.warning("Autosave failed: %s", engine.last_persistence_error)
    finally:
        # Last chance on cancellation.
        if engine.dirty:
            engine.flush()


async def run_background(
    engine: StudyEngine,
    stop_event: asyncio.Event,
    *,
    autosave_seconds: float,
    archive_check_seconds: float,
) -> None:
    """Run the loops until stop_event is set. autosave_seconds == 0 disables autosave."""
    loops = [asyncio.create_task(run_archive_scheduler(engine, interval_seconds=archive_check_seconds))]
    if autosave_seconds > 0:
        loops.append(asyncio.create_task(run_autosave(engine, interval_seconds=autosave_seconds)))
    logger.info("Background loops started (autosave=%ss archive=%ss)", autosave_seconds, archive_check_seconds)

    try:
        await stop_event.wait()
    finally:
        for task in loops:
            task.cancel()
        await asyncio.gather(*loops, return_exceptions=True)
        logger.info("Background loops stopped.")


@dataclass
class BackgroundRunner:
    thread: threading.Thread
    loop: asyncio.AbstractEventLoop
    stop_event: asyncio.Event

    def stop(self) -> None:
        try:
            self.loop.call_soon_threadsafe(self.stop_event.set)
        except RuntimeError:
            logger.debug("Failed to signal background stop.", exc_info=True)

    def join(self, timeout: float | None = None) -> None:
        self.thread.join(timeout=timeout)


def start_in_background(
    engine: StudyEngine,
    *,
    autosave_seconds: float,
    archive_check_seconds: float,
) -> BackgroundRunner | None:
    """
    Start the loops in a background thread with its own event loop.

    The console REPL is blocking (input()), so the loops cannot share its thread.
    """
    ready = threading.Event()
    holder: dict[str, object] = {}

    def runner() -> None:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        stop_event = asyncio.Event()

        holder["loop"] = loop
        holder["stop_event"] = stop_event
        ready.set()

        try:
            loop.run_until_complete(
                run_background(
                    engine,
                    stop_event,
                    autosave_seconds=autosave_seconds,
                    archive_check_seconds=archive_check_seconds,
                )
            )
        finally:
            with contextlib.suppress(Exception):
                loop.close()

    t = threading.Thread(target=runner, name="studytrack-loops", daemon=True)
    t.start()

    ready.wait(timeout=5.0)
    loop = holder.get("loop")
    stop_event = holder.get("stop_event")

    if not isinstance(loop, asyncio.AbstractEventLoop) or not isinstance(stop_event, asyncio.Event):
        logger.error("Background thread did not initialize properly.")
        return None

    return BackgroundRunner(thread=t, loop=loop, stop_event=stop_event)
