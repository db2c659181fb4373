"""
Async Logging Service.

Managers log through this service instead of writing files themselves. Lines
are queued and a single writer task appends them to the log file in batches,
so a slow disk never stalls a search. Each line carries the id of the request
being served, when there is one, so log lines can be matched to profiles.

Usage:
    await services.logging_service.info("[VectorSearchManager] Started")
    services.logging_service.log_nowait("[CacheMaintenance] Swept 3", "DEBUG")
"""

import asyncio
import sys
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING

import aiofiles

if TYPE_CHECKING:
    from regsearch.context import Context

from regsearch.request_context import get_request_id
from regsearch.services.manager import BaseAsyncLoggingService

LOG_LEVELS = {"DEBUG": 10, "INFO": 20, "WARNING": 30, "ERROR": 40, "CRITICAL": 50}

# lines written per file open
MAX_BATCH_SIZE = 256

_STOP = None


class AsyncLoggingService(BaseAsyncLoggingService):
    """Queued, level-filtered file logger tagged with the current request id."""

    def __init__(
        self,
        context: "Context",
        log_dir: str = "logs",
        log_file: str | None = None,
        use_timestamp: bool = True,
        console_output: bool = True,
        min_level: str = "DEBUG",
    ):
        """
        Args:
            context: Shared application context
            log_dir: Directory for the log file
            log_file: File name; generated from the start time when omitted
                and use_timestamp is set, otherwise "regsearch.log"
            use_timestamp: Generate a per-run file name
            console_output: Echo every line to stdout
            min_level: Lines below this level are dropped before queueing
        """
        super().__init__(context)
        self.console_output = console_output
        self.min_level = LOG_LEVELS.get(min_level.upper(), LOG_LEVELS["DEBUG"])

        if log_file is None:
            log_file = (
                f"regsearch_{datetime.now().strftime('%Y-%m-%d_%H-%M-%S')}.log"
                if use_timestamp
                else "regsearch.log"
            )
        self.log_path = Path(log_dir) / log_file

        self._queue: asyncio.Queue[str | None] = asyncio.Queue()
        self._writer_task: asyncio.Task | None = None

    # -------------------------------------------------------------- #
    # Manager Methods
    # -------------------------------------------------------------- #

    async def on_start(self, services) -> None:
        await super().on_start(services)
        self.log_path.parent.mkdir(parents=True, exist_ok=True)
        self._writer_task = asyncio.create_task(self._writer())
        await self.info(f"[AsyncLoggingService] Logging to {self.log_path}")

    async def on_close(self) -> None:
        """Stop the writer once everything queued so far is on disk."""
        await super().on_close()
        if self._writer_task is not None:
            await self._queue.put(_STOP)
            await self._writer_task
            self._writer_task = None

        # lines queued after the writer stopped
        leftover = [line for line in self._drain(self._queue.qsize()) if line is not _STOP]
        if leftover:
            await self._write(leftover)

    # -------------------------------------------------------------- #
    # Logging
    # -------------------------------------------------------------- #

    async def log(self, message: str, level: str = "INFO") -> None:
        line = self._format(message, level)
        if line is not None:
            await self._queue.put(line)

    def log_nowait(self, message: str, level: str = "INFO") -> None:
        """Queue a line from synchronous code (cache sweeps, cache clears)."""
        line = self._format(message, level)
        if line is not None:
            self._queue.put_nowait(line)

    async def debug(self, message: str) -> None:
        await self.log(message, "DEBUG")

    async def info(self, message: str) -> None:
        await self.log(message, "INFO")

    async def warning(self, message: str) -> None:
        await self.log(message, "WARNING")

    async def error(self, message: str) -> None:
        await self.log(message, "ERROR")

    async def critical(self, message: str) -> None:
        await self.log(message, "CRITICAL")

    @property
    def pending(self) -> int:
        """Lines queued but not yet written."""
        return self._queue.qsize()

    # -------------------------------------------------------------- #
    # Writer
    # -------------------------------------------------------------- #

    def _format(self, message: str, level: str) -> str | None:
        level = level.upper()
        if LOG_LEVELS.get(level, LOG_LEVELS["INFO"]) < self.min_level:
            return None

        request_id = get_request_id()
        request_tag = f" [req={request_id}]" if request_id else ""
        return f"[{datetime.now().isoformat()}] [{level}]{request_tag} {message}"

    def _drain(self, limit: int = MAX_BATCH_SIZE) -> list[str | None]:
        batch: list[str | None] = []
        while len(batch) < limit:
            try:
                batch.append(self._queue.get_nowait())
            except asyncio.QueueEmpty:
                break
        return batch

    async def _writer(self) -> None:
        while True:
            batch = [await self._queue.get()]
            batch.extend(self._drain(MAX_BATCH_SIZE - 1))

            stop = _STOP in batch
            lines = [line for line in batch if line is not _STOP]
            if lines:
                await self._write(lines)
            if stop:
                return

    async def _write(self, lines: list[str]) -> None:
        if self.console_output:
            print("\n".join(lines), file=sys.stdout, flush=True)

        try:
            async with aiofiles.open(self.log_path, mode="a", encoding="utf-8") as f:
                await f.write("".join(f"{line}\n" for line in lines))
        except OSError as e:
            print(f"[AsyncLoggingService] Failed to write {self.log_path}: {e}", file=sys.stderr)
