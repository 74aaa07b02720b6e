"""Single-flight scan scheduling.

At most one scan runs at a time and at most one request waits behind it.
A waiting request is replaced by a newer one of equal or higher trigger
priority (manual > catch_up > scheduled).
"""

import inspect
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from pathlib import Path

from skillduggery.engine import ScanEngine, ScanOptions
from skillduggery.parser.models import ScanRun, ScanTrigger

logger = logging.getLogger(__name__)


@dataclass
class ScanInputs:
    """What the host wants scanned right now."""

    roots: list[Path]
    options: ScanOptions = field(default_factory=ScanOptions)


InputsProvider = Callable[[], ScanInputs]
RunSink = Callable[[ScanRun], Awaitable[None] | None]


class ScanCoordinator:
    """Serializes scan requests in front of a ScanEngine."""

    def __init__(
        self,
        engine: ScanEngine,
        inputs_provider: InputsProvider,
        sinks: Sequence[RunSink] = (),
    ) -> None:
        self._engine = engine
        self._inputs_provider = inputs_provider
        self._sinks = list(sinks)
        self._running = False
        self._pending: ScanTrigger | None = None

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def pending(self) -> ScanTrigger | None:
        return self._pending

    async def request_scan(self, trigger: ScanTrigger) -> ScanRun | None:
        """Run a scan now, or queue it if one is in flight.

        Returns the run executed for ``trigger``, or None when it was queued
        (or dropped in favour of a higher-priority pending request).
        """
        if self._running:
            self._enqueue(trigger)
            return None

        self._running = True
        try:
            run = await self._execute(trigger)
            while self._pending is not None:
                next_trigger, self._pending = self._pending, None
                await self._execute(next_trigger)
        finally:
            self._running = False
        return run

    def _enqueue(self, trigger: ScanTrigger) -> None:
        if self._pending is None or trigger.priority >= self._pending.priority:
            logger.debug("Queued %s scan (replacing %s)", trigger, self._pending)
            self._pending = trigger
        else:
            logger.debug("Dropped %s scan; %s already pending", trigger, self._pending)

    async def _execute(self, trigger: ScanTrigger) -> ScanRun:
        inputs = self._inputs_provider()
        run = await self._engine.scan(inputs.roots, trigger=trigger, options=inputs.options)
        logger.info(
            "Scan %s (%s) finished: %d skills, %d findings, max severity %s",
            run.id,
            trigger,
            run.skill_count,
            run.finding_count,
            run.max_severity,
        )
        for sink in self._sinks:
            result = sink(run)
            if inspect.isawaitable(result):
                await result
        return run
