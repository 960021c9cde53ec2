"""
Step 3: Pose Estimation
Turns one tick's observations into a {distance, angle} pose estimate.

Pose sources:
- VisionMarkerSource: marker quad geometry (Step 2) -> distance and angle
- DeviceTiltSource: device inclination reading with a calibrated zero
- SimulatedSource: seeded synthetic motion for running without hardware
- FallbackPoseSource: first source that finds a pose wins

Distance and angle are approximations: the calibration constant is a tuned
value, not a camera intrinsic, and the angle comes from edge asymmetry only.
"""

import math
import numpy as np
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from utils.geometry import Point, edge_ratio
from .step1_frame_capture import FrameInput
from .step2_marker_detection import MarkerDetector, Quad


MAX_ANGLE_DEG = 90.0


@dataclass(frozen=True)
class PoseEstimate:
    """Pose estimation result. Fields other than `found` may be None."""
    found: bool
    angle_deg: Optional[float] = None
    distance_cm: Optional[float] = None
    screen_pos: Optional[Point] = None
    quad: Optional[Quad] = None
    source: str = "searching"


@dataclass(frozen=True)
class PoseSample:
    """One time-stamped pose observation fed to the kinematic tracker."""
    timestamp_ms: float
    angle_deg: float
    distance_cm: Optional[float] = None
    screen_pos: Optional[Point] = None

    @classmethod
    def from_estimate(cls, estimate: PoseEstimate, timestamp_ms: float) -> Optional["PoseSample"]:
        """Build a sample from a found estimate, None otherwise."""
        if not estimate.found or estimate.angle_deg is None:
            return None
        return cls(
            timestamp_ms=timestamp_ms,
            angle_deg=estimate.angle_deg,
            distance_cm=estimate.distance_cm,
            screen_pos=estimate.screen_pos,
        )


def clamp_angle(angle: float) -> float:
    """Clamp to [0, 90] degrees."""
    return float(min(MAX_ANGLE_DEG, max(0.0, angle)))


def estimate_distance(
    pixel_area: float,
    calibration_constant: float = 2000.0,
    min_cm: float = 3.0,
    max_cm: float = 200.0
) -> Optional[float]:
    """
    distance = calibration_constant / sqrt(pixel_area), clamped.

    Returns:
        Distance in cm, or None for a non-positive (or NaN) area
    """
    if not pixel_area > 0:
        return None
    d = calibration_constant / math.sqrt(pixel_area)
    return float(min(max_cm, max(min_cm, d)))


def quad_deviation(quad: Quad) -> Optional[float]:
    """
    Normalized asymmetry of opposite edges in [0, 1).

    0 means top/bottom and left/right edges are equal (marker facing the
    camera); values approach 1 as one edge collapses.
    """
    edges = (quad.top_width, quad.bottom_width, quad.left_height, quad.right_height)
    if min(edges) <= 0:
        return None
    width_ratio = edge_ratio(quad.top_width, quad.bottom_width)
    height_ratio = edge_ratio(quad.left_height, quad.right_height)
    return ((1.0 - width_ratio) + (1.0 - height_ratio)) / 2.0


def deviation_to_angle(deviation: float, gain: float = 6.0) -> float:
    """Exponential-saturating map of a deviation onto [0, 90] degrees."""
    deviation = max(0.0, deviation)
    return clamp_angle(MAX_ANGLE_DEG * (1.0 - math.exp(-gain * deviation)))


class PoseEstimator:
    """Quad geometry -> (angle, distance), with EMA smoothing of the angle."""

    def __init__(
        self,
        calibration_constant: float = 2000.0,
        min_distance_cm: float = 3.0,
        max_distance_cm: float = 200.0,
        angle_gain: float = 6.0,
        smoothing: float = 0.7
    ):
        """
        Initialize pose estimator.

        Args:
            calibration_constant: Tuned distance constant (cm * px)
            min_distance_cm: Lower distance clamp
            max_distance_cm: Upper distance clamp
            angle_gain: Saturation rate of the deviation -> angle curve
            smoothing: Weight of the previous angle in the moving average
        """
        self.calibration_constant = calibration_constant
        self.min_distance_cm = min_distance_cm
        self.max_distance_cm = max_distance_cm
        self.angle_gain = angle_gain
        self.smoothing = min(1.0, max(0.0, smoothing))
        self.previous_angle: Optional[float] = None

    def reset(self) -> None:
        """Forget the smoothing history."""
        self.previous_angle = None

    def smooth(self, angle: float) -> float:
        if self.previous_angle is None:
            smoothed = angle
        else:
            smoothed = self.smoothing * self.previous_angle + (1.0 - self.smoothing) * angle
        self.previous_angle = clamp_angle(smoothed)
        return self.previous_angle

    def estimate_from_quad(self, quad: Optional[Quad]) -> Optional[Tuple[float, float]]:
        """
        Estimate (angle_deg, distance_cm) from a marker quad.

        Returns:
            Tuple or None for a missing or degenerate quad
        """
        if quad is None:
            return None

        distance_cm = estimate_distance(
            quad.area,
            self.calibration_constant,
            self.min_distance_cm,
            self.max_distance_cm
        )
        deviation = quad_deviation(quad)
        if distance_cm is None or deviation is None:
            return None

        raw_angle = deviation_to_angle(deviation, self.angle_gain)
        return self.smooth(raw_angle), distance_cm


class PoseSource(ABC):
    """Anything that can turn a FrameInput into a PoseEstimate."""

    name = "source"

    @abstractmethod
    def estimate(self, frame: FrameInput) -> PoseEstimate:
        """Estimate pose for one tick. Must not raise."""
        pass

    def reset(self) -> None:
        """Clear per-session state."""
        pass

    def calibrate_zero(self) -> bool:
        """Store the current reading as zero. Returns True if calibrated."""
        return False


class VisionMarkerSource(PoseSource):
    """Camera marker tracking (Steps 2 + 3)."""

    name = "vision"

    def __init__(
        self,
        detector: Optional[MarkerDetector] = None,
        estimator: Optional[PoseEstimator] = None
    ):
        self.detector = detector or MarkerDetector()
        self.estimator = estimator or PoseEstimator()

    def reset(self) -> None:
        self.estimator.reset()

    def estimate(self, frame: FrameInput) -> PoseEstimate:
        if frame.pixels is None:
            return PoseEstimate(found=False)

        detection = self.detector.detect(frame.pixels)
        if not detection.found:
            return PoseEstimate(found=False)

        result = self.estimator.estimate_from_quad(detection.quad)
        if result is None:
            return PoseEstimate(found=False)

        angle, distance_cm = result
        return PoseEstimate(
            found=True,
            angle_deg=angle,
            distance_cm=distance_cm,
            screen_pos=detection.quad.center,
            quad=detection.quad,
            source=self.name,
        )


class DeviceTiltSource(PoseSource):
    """
    Device inclination sensor.

    Only the angle is observable; distance and screen position stay None.
    """

    name = "tilt"

    def __init__(self, zero_offset: float = 0.0):
        self.zero_offset = zero_offset
        self.last_reading: Optional[float] = None

    def angle_from_reading(self, reading: float) -> float:
        return clamp_angle(abs(reading - self.zero_offset))

    def estimate(self, frame: FrameInput) -> PoseEstimate:
        reading = frame.tilt_deg
        if reading is None or not math.isfinite(reading):
            return PoseEstimate(found=False)

        self.last_reading = float(reading)
        return PoseEstimate(
            found=True,
            angle_deg=self.angle_from_reading(self.last_reading),
            source=self.name,
        )

    def calibrate_zero(self) -> bool:
        if self.last_reading is None:
            return False
        self.zero_offset = self.last_reading
        return True


class SimulatedSource(PoseSource):
    """
    Synthetic torch motion for demos without a camera or sensor.

    The torch sweeps horizontally across the frame with a random-walk angle
    and small positional jitter. Seeded, so runs are reproducible.
    """

    name = "simulated"

    def __init__(
        self,
        frame_size: Tuple[int, int] = (1280, 720),
        base_angle: float = 20.0,
        angle_step: float = 1.5,
        angle_range: Tuple[float, float] = (10.0, 40.0),
        base_distance_cm: float = 20.0,
        distance_jitter_cm: float = 2.5,
        jitter_px: float = 10.0,
        sweep_px_per_s: float = 80.0,
        seed: Optional[int] = None
    ):
        self.frame_size = frame_size
        self.base_angle = base_angle
        self.angle_step = angle_step
        self.angle_range = angle_range
        self.base_distance_cm = base_distance_cm
        self.distance_jitter_cm = distance_jitter_cm
        self.jitter_px = jitter_px
        self.sweep_px_per_s = sweep_px_per_s
        self.seed = seed
        self.reset()

    def reset(self) -> None:
        self.rng = np.random.default_rng(self.seed)
        self.angle = self.base_angle
        self.start_ms: Optional[float] = None

    def estimate(self, frame: FrameInput) -> PoseEstimate:
        if self.start_ms is None:
            self.start_ms = frame.timestamp_ms
        elapsed_s = max(0.0, (frame.timestamp_ms - self.start_ms) / 1000.0)

        low, high = self.angle_range
        self.angle = float(np.clip(self.angle + self.rng.normal(0.0, self.angle_step), low, high))

        width, height = self.frame_size
        travel = width * 0.6
        x = width * 0.2 + (self.sweep_px_per_s * elapsed_s) % travel
        y = height / 2.0
        x += (self.rng.random() - 0.5) * 2 * self.jitter_px
        y += (self.rng.random() - 0.5) * 2 * self.jitter_px

        distance_cm = self.base_distance_cm + (self.rng.random() - 0.5) * 2 * self.distance_jitter_cm

        return PoseEstimate(
            found=True,
            angle_deg=clamp_angle(self.angle),
            distance_cm=float(distance_cm),
            screen_pos=(float(x), float(y)),
            source=self.name,
        )


class FallbackPoseSource(PoseSource):
    """Try each source in order; the first found estimate wins."""

    name = "fallback"

    def __init__(self, sources: Sequence[PoseSource]):
        self.sources: List[PoseSource] = list(sources)

    def reset(self) -> None:
        for source in self.sources:
            source.reset()

    def calibrate_zero(self) -> bool:
        calibrated = False
        for source in self.sources:
            calibrated = source.calibrate_zero() or calibrated
        return calibrated

    def estimate(self, frame: FrameInput) -> PoseEstimate:
        for source in self.sources:
            estimate = source.estimate(frame)
            if estimate.found:
                return estimate
        return PoseEstimate(found=False)
