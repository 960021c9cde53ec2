"""
Step 4: Kinematic Tracker
Derives translation speed, approach speed, angular stability and path
straightness from bounded history buffers of pose samples.

Every signal is a pure function of buffer contents; the tracker itself holds
nothing but the buffers. A metric without enough history is None
("unavailable"), never a placeholder number.
"""

import numpy as np
from collections import deque
from dataclasses import dataclass
from typing import Deque, Generic, Iterator, List, Optional, Sequence, Tuple, TypeVar

from utils.geometry import distance, path_length, perpendicular_distance
from .step3_pose_estimation import PoseSample


T = TypeVar('T')


class HistoryBuffer(Generic[T]):
    """Fixed-capacity ring buffer; the oldest item is evicted first."""

    def __init__(self, capacity: int):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self._items: Deque[T] = deque(maxlen=capacity)

    @property
    def capacity(self) -> int:
        return self._items.maxlen

    def append(self, item: T) -> None:
        self._items.append(item)

    def clear(self) -> None:
        self._items.clear()

    def last(self) -> Optional[T]:
        return self._items[-1] if self._items else None

    def values(self) -> List[T]:
        return list(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[T]:
        return iter(self._items)


# (timestamp_ms, x, y)
TimedPoint = Tuple[float, float, float]
# (timestamp_ms, distance_cm)
TimedDistance = Tuple[float, float]


@dataclass(frozen=True)
class KinematicState:
    """Derived signals after one update. None = unavailable."""
    translation_speed: Optional[float]   # cm/s
    approach_speed: float                # cm/s, negative = approaching
    stability: Optional[float]           # 0-100
    straightness: Optional[float]        # 0-100


def compute_translation_speed(
    positions: Sequence[TimedPoint],
    pixels_per_cm: float = 10.0
) -> Optional[float]:
    """
    Path length across the buffer divided by its time span, in cm/s.

    Returns:
        None with fewer than 2 positions, 0.0 for a non-positive time span
    """
    if len(positions) < 2:
        return None
    elapsed_s = (positions[-1][0] - positions[0][0]) / 1000.0
    if elapsed_s <= 0 or pixels_per_cm <= 0:
        return 0.0
    length_px = path_length([(x, y) for _, x, y in positions])
    return length_px / elapsed_s / pixels_per_cm


def compute_approach_speed(distances: Sequence[TimedDistance]) -> float:
    """
    Signed rate of change between the last two distances, in cm/s.

    Negative means the torch is approaching the work piece. 0.0 when there
    is no previous distance or the time delta is not positive.
    """
    if len(distances) < 2:
        return 0.0
    (t0, d0), (t1, d1) = distances[-2], distances[-1]
    dt_s = (t1 - t0) / 1000.0
    if dt_s <= 0:
        return 0.0
    return (d1 - d0) / dt_s


def compute_stability(angles: Sequence[float], min_samples: int = 10) -> Optional[float]:
    """max(0, 100 - 10 * population std of angles), None below min_samples."""
    if len(angles) < max(1, min_samples):
        return None
    std = float(np.std(np.asarray(angles, dtype=float)))
    return max(0.0, 100.0 - std * 10.0)


def compute_straightness(
    points: Sequence[Tuple[float, float]],
    min_points: int = 3,
    min_displacement_px: float = 10.0
) -> Optional[float]:
    """
    max(0, 100 - 5 * mean perpendicular deviation of interior points).

    The reference line joins the first and last point. None with too few
    points or when the endpoints are closer than min_displacement_px.
    """
    if len(points) < max(3, min_points):
        return None
    first, last = points[0], points[-1]
    if distance(first, last) < min_displacement_px:
        return None

    interior = points[1:-1]
    deviations = [perpendicular_distance(p, first, last) for p in interior]
    avg_deviation = sum(deviations) / len(deviations)
    return max(0.0, 100.0 - avg_deviation * 5.0)


class KinematicTracker:
    """
    Sliding-window kinematics over pose samples.

    Buffers:
    - angles: every sample's angle
    - positions: screen positions, at most one per min_position_interval_ms
    - distances: every sample's distance
    """

    def __init__(
        self,
        angle_capacity: int = 30,
        position_capacity: int = 50,
        distance_capacity: int = 10,
        min_angle_samples: int = 10,
        min_path_points: int = 3,
        min_position_interval_ms: float = 100,
        min_path_displacement_px: float = 10.0,
        pixels_per_cm: float = 10.0
    ):
        """
        Initialize kinematic tracker.

        Args:
            angle_capacity: Angle history size
            position_capacity: Screen position history size
            distance_capacity: Distance history size
            min_angle_samples: Angles required before stability is reported
            min_path_points: Positions required before straightness is reported
            min_position_interval_ms: Minimum spacing of recorded positions
            min_path_displacement_px: Minimum endpoint spacing for straightness
            pixels_per_cm: Screen to physical conversion for speed
        """
        self.angles: HistoryBuffer[float] = HistoryBuffer(angle_capacity)
        self.positions: HistoryBuffer[TimedPoint] = HistoryBuffer(position_capacity)
        self.distances: HistoryBuffer[TimedDistance] = HistoryBuffer(distance_capacity)

        self.min_angle_samples = min_angle_samples
        self.min_path_points = min_path_points
        self.min_position_interval_ms = min_position_interval_ms
        self.min_path_displacement_px = min_path_displacement_px
        self.pixels_per_cm = pixels_per_cm

    def reset(self) -> None:
        """Clear all history buffers."""
        self.angles.clear()
        self.positions.clear()
        self.distances.clear()

    def reset_motion(self) -> None:
        """Clear the time-stamped buffers (positions, distances); angles are kept."""
        self.positions.clear()
        self.distances.clear()

    def _record_position(self, sample: PoseSample) -> None:
        if sample.screen_pos is None:
            return
        last = self.positions.last()
        if last is not None and sample.timestamp_ms - last[0] < self.min_position_interval_ms:
            return
        x, y = sample.screen_pos
        self.positions.append((sample.timestamp_ms, float(x), float(y)))

    def update(self, sample: PoseSample) -> KinematicState:
        """
        Add one sample and return the derived signals.

        Args:
            sample: PoseSample for this tick

        Returns:
            KinematicState
        """
        self.angles.append(float(sample.angle_deg))
        self._record_position(sample)
        if sample.distance_cm is not None:
            self.distances.append((sample.timestamp_ms, float(sample.distance_cm)))

        return self.state()

    def state(self) -> KinematicState:
        """Signals for the current buffer contents."""
        return KinematicState(
            translation_speed=compute_translation_speed(self.positions.values(), self.pixels_per_cm),
            approach_speed=compute_approach_speed(self.distances.values()),
            stability=compute_stability(self.angles.values(), self.min_angle_samples),
            straightness=self.straightness(),
        )

    def straightness(self) -> Optional[float]:
        return compute_straightness(
            self.path(),
            self.min_path_points,
            self.min_path_displacement_px
        )

    def path(self) -> List[Tuple[float, float]]:
        """Recorded screen positions, oldest first (for drawing the trail)."""
        return [(x, y) for _, x, y in self.positions]
