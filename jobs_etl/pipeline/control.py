"""Control channel carrying pause/resume/stop commands into the run loop.

Commands are queued by the caller and only acted on when the run loop reaches
a batch boundary and calls ``checkpoint()``. While paused, the run loop waits
on the queue and wakes every ``poll_interval`` seconds to report that it is
still paused.
"""

import asyncio
import logging
from enum import Enum

logger = logging.getLogger(__name__)


class ControlCommand(str, Enum):
    PAUSE = "pause"
    RESUME = "resume"
    STOP = "stop"


class ControlChannel:
    """Single-consumer command queue for one pipeline run.

    Usage::

        channel = ControlChannel()
        channel.send(ControlCommand.PAUSE)     # from a caller
        if not await channel.checkpoint():     # in the run loop
            ...  # stop requested
    """

    def __init__(self, poll_interval: float = 1.0) -> None:
        self._poll_interval = poll_interval
        self._queue: asyncio.Queue[ControlCommand] = asyncio.Queue()
        self._paused = False
        self._stopped = False

    @property
    def stop_requested(self) -> bool:
        return self._stopped

    def send(self, command: ControlCommand) -> None:
        self._queue.put_nowait(command)

    def _apply(self, command: ControlCommand) -> None:
        if command is ControlCommand.STOP:
            self._stopped = True
        elif command is ControlCommand.PAUSE:
            self._paused = True
        elif command is ControlCommand.RESUME:
            self._paused = False

    def drain(self) -> None:
        """Apply every queued command without blocking."""
        while not self._queue.empty():
            self._apply(self._queue.get_nowait())

    async def checkpoint(self) -> bool:
        """Apply pending commands; block while paused.

        Returns False if the run should stop, True if it may start the next
        batch.
        """
        self.drain()
        if self._paused and not self._stopped:
            logger.info("Pipeline paused at batch boundary - waiting for resume")
            paused_for = 0.0
            while self._paused and not self._stopped:
                try:
                    command = await asyncio.wait_for(self._queue.get(), timeout=self._poll_interval)
                except asyncio.TimeoutError:
                    paused_for += self._poll_interval
                    logger.debug("Still paused after %.1fs", paused_for)
                    continue
                self._apply(command)
            if not self._stopped:
                logger.info("Pipeline resumed")
        return not self._stopped
