"""
Location Tracker

Wraps a PositionSource with:
- One-shot, high-accuracy fetches with a bounded wait
- Continuous watches delivered through a queue and a dedicated consumer task
- Observable last sample / last error state for display purposes
"""

import asyncio
from dataclasses import dataclass, field
from itertools import count
from typing import Any, Callable, Dict, Optional

from ...core.logging import get_logger
from ...models.alert import PositionSample
from .errors import PositionUnavailable, UnsupportedEnvironment
from .position_source import PositionError, PositionOptions, PositionSource


UNSUPPORTED_MESSAGE = "Geolocation is not supported in this environment"


@dataclass(eq=False)
class TrackingHandle:
    """Identifies one continuous watch"""
    id: int
    source_handle: Any = None
    queue: asyncio.Queue = field(default_factory=asyncio.Queue, repr=False)
    task: Optional[asyncio.Task] = field(default=None, repr=False)
    active: bool = True


class LocationTracker:
    """Fetches and watches device position on behalf of the SOS controller"""

    def __init__(self, source: Optional[PositionSource], config: Dict = None):
        self.logger = get_logger("sos.tracker")
        self.source = source
        self.config = config or {}

        self.fetch_timeout = float(self.config.get('fetch_timeout', 10))
        self.options = PositionOptions(
            high_accuracy=self.config.get('high_accuracy', True),
            timeout_ms=int(self.fetch_timeout * 1000),
            max_cache_age_ms=self.config.get('max_cache_age_ms', 0)
        )

        # Informational state for display
        self.last_sample: Optional[PositionSample] = None
        self.last_error: Optional[str] = None
        self.loading = False

        self._handle_ids = count(1)
        self._watches: Dict[int, TrackingHandle] = {}

    @property
    def is_supported(self) -> bool:
        return self.source is not None

    @property
    def active_watches(self) -> int:
        return len(self._watches)

    async def fetch_once(self) -> PositionSample:
        """
        Get a single fresh position fix

        Returns:
            The position sample reported by the source

        Raises:
            UnsupportedEnvironment: If no position source is available
            PositionUnavailable: If the source fails, denies or times out
        """
        if self.source is None:
            self.last_error = UNSUPPORTED_MESSAGE
            raise UnsupportedEnvironment(UNSUPPORTED_MESSAGE)

        loop = asyncio.get_running_loop()
        future: asyncio.Future = loop.create_future()

        def on_success(sample: PositionSample):
            if not future.done():
                future.set_result(sample)

        def on_error(error: PositionError):
            if not future.done():
                future.set_exception(PositionUnavailable(str(error)))

        self.loading = True
        try:
            try:
                self.source.request_once(on_success, on_error, self.options)
            except Exception as e:
                raise PositionUnavailable(f"Position source error: {e}") from e
            sample = await asyncio.wait_for(future, timeout=self.fetch_timeout)
        except asyncio.TimeoutError:
            self.last_error = "Timed out waiting for position"
            self.logger.warning(f"Position fetch timed out after {self.fetch_timeout}s")
            raise PositionUnavailable(self.last_error)
        except PositionUnavailable as e:
            self.last_error = str(e)
            self.logger.warning(f"Position fetch failed: {e}")
            raise
        finally:
            self.loading = False

        self.last_sample = sample
        self.last_error = None
        return sample

    def start_watch(self, on_sample: Callable[[PositionSample], None]) -> Optional[TrackingHandle]:
        """
        Start continuous sampling

        Args:
            on_sample: Called once per successful sample, in source order

        Returns:
            Handle for stop_watch(), or None when positioning is unsupported
        """
        if self.source is None:
            self.last_error = UNSUPPORTED_MESSAGE
            self.logger.warning("Cannot start location watch: no position source")
            return None

        handle = TrackingHandle(id=next(self._handle_ids))

        def on_success(sample: PositionSample):
            if handle.active:
                handle.queue.put_nowait(sample)

        def on_error(error: PositionError):
            if handle.active:
                self.last_error = str(error)
                self.logger.debug(f"Watch {handle.id} sampling error: {error}")

        handle.task = asyncio.create_task(self._deliver_samples(handle, on_sample))
        try:
            handle.source_handle = self.source.watch(on_success, on_error, self.options)
        except Exception as e:
            handle.active = False
            handle.task.cancel()
            self.last_error = f"Position source error: {e}"
            self.logger.error(f"Cannot start location watch: {e}")
            return None
        self._watches[handle.id] = handle

        self.logger.info(f"Started location watch {handle.id}")
        return handle

    def stop_watch(self, handle: Optional[TrackingHandle]) -> None:
        """Stop a watch. Stopped, unknown or None handles are ignored."""
        if handle is None or not isinstance(handle, TrackingHandle):
            return
        if self._watches.get(handle.id) is not handle or not handle.active:
            return

        handle.active = False
        del self._watches[handle.id]

        if self.source is not None:
            self.source.cancel_watch(handle.source_handle)
        if handle.task and not handle.task.done():
            handle.task.cancel()

        self.logger.info(f"Stopped location watch {handle.id}")

    def close(self) -> None:
        """Stop every outstanding watch"""
        for handle in list(self._watches.values()):
            self.stop_watch(handle)

    async def _deliver_samples(self, handle: TrackingHandle,
                               on_sample: Callable[[PositionSample], None]):
        """Consume queued samples for one watch until it is stopped"""
        while handle.active:
            sample = await handle.queue.get()
            if not handle.active:
                break

            self.last_sample = sample
            self.last_error = None
            try:
                on_sample(sample)
            except Exception as e:
                self.logger.error(f"Error in location watch {handle.id} callback: {e}")
