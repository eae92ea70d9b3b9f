"""Fixed capacity history of simulation channels.

Every channel is stored twice in a buffer of twice the capacity, so that the
most recent ``capacity`` samples are always available as one contiguous numpy
view in chronological order, without copying on read or shifting on write.
"""

from __future__ import annotations
from typing import Iterable
import math

import numpy as np
import numpy.typing as npt


class History:
    def __init__(self, channels: Iterable[str], capacity: int):
        if capacity < 1:
            raise ValueError("History capacity must be at least 1")
        self.channels = list(channels)
        if "time" not in self.channels:
            self.channels.insert(0, "time")
        self.capacity = int(capacity)
        self._buffer = np.zeros((len(self.channels), 2 * self.capacity), dtype=np.float64)
        self._index = {name: i for i, name in enumerate(self.channels)}
        self.clear()

    @classmethod
    def for_duration(cls, channels: Iterable[str], duration: float, dt: float) -> "History":
        return cls(channels, math.ceil(duration / dt - 1e-9))

    def clear(self) -> None:
        self._write = 0
        self._size = 0

    def __len__(self) -> int:
        return self._size

    def append(self, sample: dict[str, float]) -> None:
        """Record one sample, evicting the oldest one when full"""
        column = np.array([sample[name] for name in self.channels], dtype=np.float64)
        self._buffer[:, self._write] = column
        self._buffer[:, self._write + self.capacity] = column
        self._write = (self._write + 1) % self.capacity
        self._size = min(self._size + 1, self.capacity)

    def _start(self) -> int:
        return 0 if self._size < self.capacity else self._write

    def view(self, name: str) -> npt.NDArray[np.float64]:
        """Read-only chronological view of one channel

        The view shares memory with the buffer and is only meaningful until the
        next call to :meth:`append`.
        """
        start = self._start()
        view = self._buffer[self._index[name], start : start + self._size]
        view.flags.writeable = False
        return view

    def views(self) -> dict[str, npt.NDArray[np.float64]]:
        return {name: self.view(name) for name in self.channels}

    def tail(self, name: str, n: int) -> npt.NDArray[np.float64]:
        """The last ``n`` samples (or fewer) of a channel"""
        data = self.view(name)
        return data[max(0, len(data) - n) :]

    def value_at(self, name: str, t: float, fallback: float) -> float:
        """Value of a channel at time ``t``, linearly interpolated

        Times before the oldest sample return the oldest value, times after the
        newest sample return the newest value, and ``fallback`` is returned
        while fewer than two samples are recorded.
        """
        if self._size < 2:
            return fallback
        times = self.view("time")
        series = self.view(name)
        if t <= times[0]:
            return float(series[0])
        if t >= times[-1]:
            return float(series[-1])
        i = int(np.searchsorted(times, t, side="right")) - 1
        alpha = (t - times[i]) / (times[i + 1] - times[i])
        return float(series[i] * (1 - alpha) + series[i + 1] * alpha)

    def to_dict(self) -> dict[str, npt.NDArray[np.float64]]:
        """Owned copies of all channels"""
        return {name: self.view(name).copy() for name in self.channels}
