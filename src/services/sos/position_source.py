"""
Position Sources

Pluggable sources of device position. The tracker only relies on the
callback contract defined by PositionSource; how a source obtains its fixes
is up to the implementation.

Implementations:
- ReplayPositionSource: replays recorded samples at a fixed interval
"""

import asyncio
import json
from dataclasses import dataclass
from enum import IntEnum
from itertools import count
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import yaml

from ...core.logging import get_logger
from ...models.alert import PositionSample


SuccessCallback = Callable[[PositionSample], None]
ErrorCallback = Callable[['PositionError'], None]


class PositionErrorCode(IntEnum):
    """Position failure codes"""
    PERMISSION_DENIED = 1
    POSITION_UNAVAILABLE = 2
    TIMEOUT = 3


@dataclass(frozen=True)
class PositionError:
    """Failure reported by a position source"""
    code: PositionErrorCode
    message: str = ""

    def __str__(self) -> str:
        return self.message or self.code.name.lower().replace('_', ' ')


@dataclass(frozen=True)
class PositionOptions:
    """Sampling options passed to a position source"""
    high_accuracy: bool = True
    timeout_ms: int = 10000
    max_cache_age_ms: int = 0


class PositionSource:
    """
    Interface for device positioning.

    Sources report through callbacks so they can be driven by hardware,
    network fixes or recordings alike.
    """

    def request_once(self, on_success: SuccessCallback, on_error: ErrorCallback,
                     options: PositionOptions) -> None:
        """Request a single fix; exactly one of the callbacks should fire."""
        raise NotImplementedError

    def watch(self, on_success: SuccessCallback, on_error: ErrorCallback,
              options: PositionOptions) -> Any:
        """Start continuous sampling and return a source-specific handle."""
        raise NotImplementedError

    def cancel_watch(self, handle: Any) -> None:
        """Stop a watch started by watch(). Unknown handles are ignored."""
        raise NotImplementedError


class ReplayPositionSource(PositionSource):
    """
    Replays a fixed list of samples.

    One-shot requests return the next sample in the recording; watches walk the
    recording from the current position, one sample per interval, looping when
    the end is reached.
    """

    def __init__(self, samples: List[PositionSample], interval: float = 5.0,
                 loop_samples: bool = True):
        self.logger = get_logger("sos.position_source")
        self.samples = list(samples)
        self.interval = interval
        self.loop_samples = loop_samples

        self._cursor = 0
        self._handles = count(1)
        self._watches: Dict[int, asyncio.Task] = {}

    @classmethod
    def from_file(cls, file_path: str, interval: float = 5.0) -> 'ReplayPositionSource':
        """
        Load a recording from a YAML or JSON file

        The file holds a list of mappings with latitude/longitude (or lat/lng)
        and an optional accuracy.
        """
        path = Path(file_path)
        with open(path, 'r') as f:
            if path.suffix.lower() == '.json':
                data = json.load(f)
            else:
                data = yaml.safe_load(f)

        if isinstance(data, dict):
            data = data.get('samples', [])
        if not isinstance(data, list):
            raise ValueError(f"Position recording {path} must contain a list of samples")

        samples = [PositionSample.from_dict(item) for item in data]
        return cls(samples, interval=interval)

    def _next_sample(self) -> Optional[PositionSample]:
        if not self.samples:
            return None
        if self._cursor >= len(self.samples):
            if not self.loop_samples:
                return None
            self._cursor = 0
        sample = self.samples[self._cursor]
        self._cursor += 1
        return sample

    def request_once(self, on_success: SuccessCallback, on_error: ErrorCallback,
                     options: PositionOptions) -> None:
        loop = asyncio.get_running_loop()
        sample = self._next_sample()
        if sample is None:
            error = PositionError(PositionErrorCode.POSITION_UNAVAILABLE, "Recording exhausted")
            loop.call_soon(on_error, error)
        else:
            loop.call_soon(on_success, sample)

    def watch(self, on_success: SuccessCallback, on_error: ErrorCallback,
              options: PositionOptions) -> int:
        handle = next(self._handles)
        self._watches[handle] = asyncio.create_task(
            self._replay_loop(on_success, on_error)
        )
        return handle

    def cancel_watch(self, handle: Any) -> None:
        task = self._watches.pop(handle, None)
        if task:
            task.cancel()

    async def _replay_loop(self, on_success: SuccessCallback, on_error: ErrorCallback):
        while True:
            sample = self._next_sample()
            if sample is None:
                on_error(PositionError(PositionErrorCode.POSITION_UNAVAILABLE,
                                       "Recording exhausted"))
                return
            on_success(sample)
            await asyncio.sleep(self.interval)
