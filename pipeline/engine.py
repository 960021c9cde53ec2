"""
Welding Engine
Wires pose source, session, scorer and feedback into one per-tick transition.

The engine never schedules itself: a driver (see main.py) calls tick() once
per frame and the session controls (begin/pause/stop) from user input.
Everything runs on the driver's thread; nothing here is thread-safe.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Optional

import config
from .feedback import FeedbackDispatcher, FeedbackEvent, FeedbackSink, angle_event
from .process_profiles import ProcessKind, ProcessProfile, load_profiles
from .settings import WeldSettings
from .step1_frame_capture import FrameInput
from .step2_marker_detection import MarkerDetector
from .step3_pose_estimation import (
    DeviceTiltSource, FallbackPoseSource, PoseEstimate, PoseEstimator,
    PoseSample, PoseSource, SimulatedSource, VisionMarkerSource,
)
from .step4_kinematic_tracker import KinematicState, KinematicTracker
from .step5_scorer import Results, ScoringEngine
from .step6_session import EvaluationSession, SessionState

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TickResult:
    """Everything the display needs after one tick."""
    timestamp_ms: float
    estimate: PoseEstimate
    sample: Optional[PoseSample]
    kinematics: Optional[KinematicState]
    state: SessionState
    live_score: Optional[float]

    @property
    def status(self) -> str:
        if not self.estimate.found:
            return "SEARCHING"
        return self.state.value


def build_pose_source(mode: str = "vision", frame_size=(1280, 720),
                      seed: Optional[int] = None,
                      profile: Optional[ProcessProfile] = None) -> PoseSource:
    """
    Create a pose source from config.

    Args:
        mode: "vision" (marker, tilt fallback), "tilt" or "simulated"
        frame_size: (width, height) for the simulated source
        seed: Seed for the simulated source
        profile: Simulated distances are centered on its distance band
    """
    if mode == "tilt":
        return DeviceTiltSource()
    if mode == "simulated":
        if profile is None:
            return SimulatedSource(frame_size=frame_size, seed=seed)
        return SimulatedSource(
            frame_size=frame_size,
            base_distance_cm=profile.optimal_distance.midpoint,
            distance_jitter_cm=profile.optimal_distance.width / 2,
            seed=seed
        )
    if mode != "vision":
        raise ValueError(f"Unknown pose source mode: {mode!r}")

    detector = MarkerDetector(
        search_fraction=config.SEARCH_WINDOW_FRACTION,
        min_area_px=config.MIN_MARKER_AREA_PX,
        min_contrast_ratio=config.MIN_CONTRAST_RATIO,
        row_tolerance_px=config.CORNER_ROW_TOLERANCE_PX
    )
    estimator = PoseEstimator(
        calibration_constant=config.CALIBRATION_CONSTANT,
        min_distance_cm=config.MIN_DISTANCE_CM,
        max_distance_cm=config.MAX_DISTANCE_CM,
        angle_gain=config.ANGLE_CURVE_GAIN,
        smoothing=config.ANGLE_SMOOTHING
    )
    return FallbackPoseSource([
        VisionMarkerSource(detector, estimator),
        DeviceTiltSource(),
    ])


class WeldingEngine:
    """Motion & scoring engine driven by frame ticks."""

    def __init__(
        self,
        pose_source: PoseSource,
        settings: Optional[WeldSettings] = None,
        profiles: Optional[Dict[ProcessKind, ProcessProfile]] = None,
        scorer: Optional[ScoringEngine] = None,
        session: Optional[EvaluationSession] = None,
        feedback: Optional[FeedbackDispatcher] = None
    ):
        self.pose_source = pose_source
        self.settings = settings or WeldSettings()
        self.profiles = profiles or load_profiles()
        self.scorer = scorer or ScoringEngine()
        self.session = session or EvaluationSession()
        self.feedback = feedback or FeedbackDispatcher()
        self.last_tick: Optional[TickResult] = None

    @classmethod
    def from_config(
        cls,
        pose_source: PoseSource,
        settings: Optional[WeldSettings] = None,
        profiles_path: Optional[str] = None,
        audio_sink: Optional[FeedbackSink] = None,
        haptic_sink: Optional[FeedbackSink] = None
    ) -> "WeldingEngine":
        """Build an engine with every tunable taken from config.py."""
        tracker = KinematicTracker(
            angle_capacity=config.ANGLE_HISTORY_SIZE,
            position_capacity=config.POSITION_HISTORY_SIZE,
            distance_capacity=config.DISTANCE_HISTORY_SIZE,
            min_angle_samples=config.MIN_ANGLE_SAMPLES,
            min_path_points=config.MIN_PATH_POINTS,
            min_position_interval_ms=config.MIN_POSITION_INTERVAL_MS,
            min_path_displacement_px=config.MIN_PATH_DISPLACEMENT_PX,
            pixels_per_cm=config.PIXELS_PER_CM
        )
        scorer = ScoringEngine(
            penalty_factor=config.ANGLE_PENALTY_FACTOR,
            recommendation_threshold=config.RECOMMENDATION_THRESHOLD,
            score_noise=config.SCORE_NOISE,
            seed=config.SCORE_SEED
        )
        feedback = FeedbackDispatcher(
            audio_sink=audio_sink,
            haptic_sink=haptic_sink,
            angle_cooldown_ms=config.ANGLE_FEEDBACK_COOLDOWN_MS,
            calibration_cooldown_ms=config.CALIBRATION_FEEDBACK_COOLDOWN_MS,
            weld_cooldown_ms=config.WELD_FEEDBACK_COOLDOWN_MS,
            pulse_interval_ms=config.WELD_PULSE_INTERVAL_MS
        )
        settings = settings or WeldSettings(
            process_kind=config.PROCESS_KIND,
            material=config.MATERIAL,
            sound_enabled=config.SOUND_ENABLED,
            vibration_enabled=config.VIBRATION_ENABLED
        )
        return cls(
            pose_source=pose_source,
            settings=settings,
            profiles=load_profiles(profiles_path or config.PROFILES_PATH),
            scorer=scorer,
            session=EvaluationSession(tracker),
            feedback=feedback,
        )

    @property
    def profile(self) -> ProcessProfile:
        return self.profiles[self.settings.process_kind]

    def set_process_kind(self, kind) -> ProcessProfile:
        """Switch process. Already-recorded samples keep their scores."""
        self.settings.process_kind = ProcessKind.parse(kind)
        logger.info("Process set to %s", self.profile.display_name)
        return self.profile

    def tick(self, frame: FrameInput) -> TickResult:
        """
        Process one frame.

        Pose is estimated every tick; the sample only reaches the tracker and
        metrics while the session is welding.
        """
        try:
            estimate = self.pose_source.estimate(frame)
        except Exception as e:
            logger.warning("Pose source failed, treating frame as searching: %s", e)
            estimate = PoseEstimate(found=False)

        sample = PoseSample.from_estimate(estimate, frame.timestamp_ms)
        profile = self.profile
        kinematics = None

        if sample is not None and self.session.welding_active:
            kinematics = self.session.process(sample, profile, self.scorer)
            self.feedback.dispatch(
                angle_event(sample.angle_deg, profile.optimal_angle),
                frame.timestamp_ms,
                self.settings
            )
        if self.session.welding_active:
            self.feedback.dispatch(FeedbackEvent.WELD_PULSE, frame.timestamp_ms, self.settings)

        live_score = self.scorer.live_score(self.session.metrics) if self.session.active else None

        self.last_tick = TickResult(
            timestamp_ms=frame.timestamp_ms,
            estimate=estimate,
            sample=sample,
            kinematics=kinematics,
            state=self.session.state,
            live_score=live_score,
        )
        return self.last_tick

    def start(self, now_ms: float) -> bool:
        started = self.session.start(now_ms)
        if started:
            self.pose_source.reset()
            self.feedback.reset()
        return started

    def begin_welding(self, now_ms: float) -> bool:
        if not self.session.active:
            self.start(now_ms)
        began = self.session.begin_welding(now_ms)
        if began:
            self.feedback.dispatch(FeedbackEvent.WELD_STARTED, now_ms, self.settings)
            self.feedback.hold(FeedbackEvent.WELD_PULSE, now_ms)
        return began

    def pause_welding(self, now_ms: float) -> bool:
        paused = self.session.pause_welding()
        if paused:
            self.feedback.dispatch(FeedbackEvent.WELD_PAUSED, now_ms, self.settings)
        return paused

    def stop(self, now_ms: float) -> Optional[Results]:
        return self.session.stop(now_ms, self.scorer, self.profile)

    def calibrate(self, now_ms: float) -> bool:
        """Use the current tilt reading as the zero angle."""
        calibrated = self.pose_source.calibrate_zero()
        if calibrated:
            logger.info("Tilt zero calibrated")
            self.feedback.dispatch(FeedbackEvent.CALIBRATION_CONFIRMED, now_ms, self.settings)
        else:
            logger.info("Calibration skipped: no tilt reading yet")
        return calibrated

    @property
    def results(self) -> Optional[Results]:
        return self.session.results
