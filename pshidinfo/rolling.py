import math
from collections import deque
from typing import Deque, List


class RollingAverage:
    """Fixed-capacity FIFO with a running sum, so the mean costs O(1)."""

    def __init__(self, capacity: int) -> None:
        if capacity <= 0:
            raise ValueError(f"capacity must be positive, got {capacity}")
        self.capacity: int = capacity
        self._values: Deque[float] = deque()
        self._sum: float = 0.0

    def add(self, value: float) -> None:
        if len(self._values) == self.capacity:
            self._sum -= self._values.popleft()
        self._values.append(value)
        self._sum += value

    def reset(self) -> None:
        self._values.clear()
        self._sum = 0.0

    @property
    def average(self) -> float:
        if not self._values:
            return 0.0
        return self._sum / len(self._values)

    @property
    def values(self) -> List[float]:
        return list(self._values)

    def __len__(self) -> int:
        return len(self._values)


class RollingMedian:
    """Fixed-capacity FIFO whose median and deviation are recomputed on demand.

    The session feeds this window with the output of a RollingAverage, so the
    sort below runs once per smoothed sample over a small window.
    """

    def __init__(self, capacity: int) -> None:
        if capacity <= 0:
            raise ValueError(f"capacity must be positive, got {capacity}")
        self.capacity: int = capacity
        self._values: Deque[float] = deque(maxlen=capacity)

    def add(self, value: float) -> None:
        self._values.append(value)

    def reset(self) -> None:
        self._values.clear()

    @property
    def median(self) -> float:
        if not self._values:
            return 0.0
        ordered = sorted(self._values)
        mid = len(ordered) // 2
        if len(ordered) % 2 == 0:
            return (ordered[mid - 1] + ordered[mid]) / 2.0
        return ordered[mid]

    @property
    def deviation(self) -> float:
        # Sample standard deviation (n - 1) around this window's own mean.
        count = len(self._values)
        if count < 2:
            return 0.0
        mean = sum(self._values) / count
        squares = sum((x - mean) ** 2 for x in self._values)
        return math.sqrt(squares / (count - 1))

    @property
    def values(self) -> List[float]:
        return list(self._values)

    def __len__(self) -> int:
        return len(self._values)
