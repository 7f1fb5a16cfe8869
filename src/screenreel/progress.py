"""Export progress values, the bounded progress channel, and the cancel token.

The export worker pushes :class:`ExportProgress` values into a sink (any
callable); :class:`ProgressChannel` is the default sink and lets the caller
pull values independently of the worker's loop.
"""

from __future__ import annotations

import queue
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterator, Optional


class ExportStage(str, Enum):
    PREPARING = "preparing"
    SMOOTHING_CURSOR = "smoothingCursor"
    ENCODING = "encoding"
    FINALIZING = "finalizing"
    COMPLETE = "complete"
    ERROR = "error"


@dataclass(frozen=True)
class ExportProgress:
    percent: float
    stage: ExportStage
    current_unit: int = 0
    total_units: int = 0
    message: Optional[str] = None  # only set for ExportStage.ERROR

    @property
    def is_terminal(self) -> bool:
        return self.stage in (ExportStage.COMPLETE, ExportStage.ERROR)

    @classmethod
    def preparing(cls) -> "ExportProgress":
        return cls(percent=0.0, stage=ExportStage.PREPARING)

    @classmethod
    def smoothing_cursor(cls, percent: float) -> "ExportProgress":
        return cls(percent=percent, stage=ExportStage.SMOOTHING_CURSOR)

    @classmethod
    def encoding(cls, current: int, total: int) -> "ExportProgress":
        """Encoding spans 10%..95% of the bar; *current*/*total* are frames or ms."""
        if total > 0:
            percent = 10.0 + min(current / total, 1.0) * 85.0
        else:
            percent = 10.0
        return cls(percent=percent, stage=ExportStage.ENCODING, current_unit=current, total_units=total)

    @classmethod
    def finalizing(cls) -> "ExportProgress":
        return cls(percent=95.0, stage=ExportStage.FINALIZING)

    @classmethod
    def complete(cls) -> "ExportProgress":
        return cls(percent=100.0, stage=ExportStage.COMPLETE)

    @classmethod
    def error(cls, message: str) -> "ExportProgress":
        return cls(percent=0.0, stage=ExportStage.ERROR, message=message)


ProgressSink = Callable[[ExportProgress], None]


def discard_progress(_: ExportProgress) -> None:
    pass


class CancelToken:
    """Shared cancellation flag passed explicitly into every suspension point."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()


class ProgressChannel:
    """Bounded progress queue. When full, the oldest value is dropped.

    Terminal values (complete / error) are never dropped by a later push
    because nothing is pushed after them.
    """

    def __init__(self, maxsize: int = 64) -> None:
        self._queue: queue.Queue[ExportProgress] = queue.Queue(maxsize=maxsize)
        self._lock = threading.Lock()
        self.latest: Optional[ExportProgress] = None

    def __call__(self, progress: ExportProgress) -> None:
        self.push(progress)

    def push(self, progress: ExportProgress) -> None:
        with self._lock:
            self.latest = progress
            while True:
                try:
                    self._queue.put_nowait(progress)
                    return
                except queue.Full:
                    try:
                        self._queue.get_nowait()
                    except queue.Empty:
                        pass

    def get(self, timeout: Optional[float] = None) -> Optional[ExportProgress]:
        """Return the next value, or None if nothing arrived within *timeout*."""
        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def drain(self) -> Iterator[ExportProgress]:
        while True:
            try:
                yield self._queue.get_nowait()
            except queue.Empty:
                return
