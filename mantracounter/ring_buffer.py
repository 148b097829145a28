"""
Fixed-capacity circular buffer of raw audio samples.

The pattern detector keeps the most recent stretch of live audio here and
repeatedly reads the trailing window that is as long as the template.
Writes never block: once full, the oldest samples are overwritten.

Usage:
    buffer = SlidingAudioBuffer(capacity=2 * len(template))
    buffer.push(frame)
    if len(buffer) >= len(template):
        segment = buffer.read_window(len(template))
"""

from __future__ import annotations

import numpy as np


class SlidingAudioBuffer:
    """
    Circular buffer that always holds the latest ``capacity`` samples.

    All modulo arithmetic is kept inside this class; callers only see
    ``push`` and ``read_window``.
    """

    def __init__(self, capacity: int, dtype=np.float32):
        """
        Initialize the buffer.

        Args:
            capacity: Number of samples retained
            dtype: NumPy dtype used for storage
        """
        if capacity < 1:
            raise ValueError(f"capacity must be positive, got {capacity}")
        self.capacity = int(capacity)
        self.dtype = dtype
        self._buffer = np.zeros(self.capacity, dtype=dtype)
        self._write_pos = 0
        self._size = 0

    def push(self, samples: np.ndarray) -> None:
        """
        Append samples, overwriting the oldest ones when full.

        Args:
            samples: Audio samples to add
        """
        data = np.asarray(samples, dtype=self.dtype).reshape(-1)
        n = data.size
        if n == 0:
            return

        # Only the last ``capacity`` samples can survive the write
        if n > self.capacity:
            data = data[-self.capacity:]
            n = self.capacity

        first = min(n, self.capacity - self._write_pos)
        self._buffer[self._write_pos:self._write_pos + first] = data[:first]
        if first < n:
            # Wrap around
            self._buffer[:n - first] = data[first:]

        self._write_pos = (self._write_pos + n) % self.capacity
        self._size = min(self.capacity, self._size + n)

    def read_window(self, length: int) -> np.ndarray:
        """
        Return the most recent ``length`` samples, oldest first.

        Reads backwards from the current write position, wrapping around
        the end of the storage.  When fewer than ``length`` samples have
        been written the missing head of the window is zeros.

        Args:
            length: Number of samples to read

        Returns:
            Copy of the samples
        """
        if length < 0 or length > self.capacity:
            raise ValueError(
                f"length must be within [0, {self.capacity}], got {length}"
            )
        start = self._write_pos - length
        if start >= 0:
            return self._buffer[start:self._write_pos].copy()
        return np.concatenate([self._buffer[start:], self._buffer[:self._write_pos]])

    def clear(self) -> None:
        """Forget all samples."""
        self._buffer[:] = 0
        self._write_pos = 0
        self._size = 0

    def __len__(self) -> int:
        return self._size


__all__ = ["SlidingAudioBuffer"]
