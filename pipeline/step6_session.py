"""
Step 6: Evaluation Session
Session lifecycle: IDLE -> ACTIVE -> WELDING <-> PAUSED -> STOPPED.

Samples reach the kinematic tracker and the metric arrays only while the
session is WELDING. Results are computed exactly once, on the first stop().
"""

import logging
from enum import Enum
from typing import Optional

from .process_profiles import ProcessProfile
from .step3_pose_estimation import PoseSample
from .step4_kinematic_tracker import KinematicState, KinematicTracker
from .step5_scorer import Results, ScoringEngine, SessionMetrics

logger = logging.getLogger(__name__)


class SessionState(Enum):
    """Session lifecycle states."""
    IDLE = "IDLE"
    ACTIVE = "ACTIVE"
    WELDING = "WELDING"
    PAUSED = "PAUSED"
    STOPPED = "STOPPED"


ACTIVE_STATES = (SessionState.ACTIVE, SessionState.WELDING, SessionState.PAUSED)


def format_elapsed(elapsed_ms: float) -> str:
    """MM:SS"""
    total_seconds = int(max(0.0, elapsed_ms) // 1000)
    minutes, seconds = divmod(total_seconds, 60)
    return f"{minutes:02d}:{seconds:02d}"


class EvaluationSession:
    """
    One evaluation session at a time.

    Owns the metric arrays and the kinematic tracker so that start() can reset
    both together. The previous session's results stay readable until the
    next stop() overwrites them.
    """

    def __init__(self, tracker: Optional[KinematicTracker] = None):
        self.tracker = tracker or KinematicTracker()
        self.metrics = SessionMetrics()
        self.state = SessionState.IDLE
        self.start_time_ms: Optional[float] = None
        self.end_time_ms: Optional[float] = None
        self.weld_started_ms: Optional[float] = None
        self.results: Optional[Results] = None

    @property
    def active(self) -> bool:
        return self.state in ACTIVE_STATES

    @property
    def welding_active(self) -> bool:
        return self.state == SessionState.WELDING

    def start(self, now_ms: float) -> bool:
        """IDLE/STOPPED -> ACTIVE. Returns False if already active."""
        if self.active:
            return False
        self.metrics.clear()
        self.tracker.reset()
        self.start_time_ms = now_ms
        self.end_time_ms = None
        self.weld_started_ms = None
        self.state = SessionState.ACTIVE
        logger.info("Evaluation session started")
        return True

    def begin_welding(self, now_ms: float) -> bool:
        """ACTIVE/PAUSED -> WELDING, starting a session first if needed."""
        if self.state == SessionState.WELDING:
            return False
        if not self.active:
            self.start(now_ms)
        elif self.state == SessionState.PAUSED:
            # Motion history from before the pause would span the gap
            self.tracker.reset_motion()
        self.state = SessionState.WELDING
        self.weld_started_ms = now_ms
        logger.debug("Welding started")
        return True

    def pause_welding(self) -> bool:
        """WELDING -> PAUSED."""
        if self.state != SessionState.WELDING:
            return False
        self.state = SessionState.PAUSED
        self.weld_started_ms = None
        logger.debug("Welding paused")
        return True

    def stop(self, now_ms: float, scorer: ScoringEngine, profile: ProcessProfile) -> Optional[Results]:
        """
        Any active state -> STOPPED, scoring the session.

        Calling stop() again (or while IDLE) changes nothing and returns the
        current results.
        """
        if not self.active:
            return self.results

        self.state = SessionState.STOPPED
        self.end_time_ms = now_ms
        self.weld_started_ms = None
        self.results = scorer.score(self.metrics, profile, duration_ms=self.elapsed_ms(now_ms))
        logger.info(
            "Evaluation session stopped: %d samples, final score %d",
            self.metrics.sample_count, self.results.final_score
        )
        return self.results

    def process(self, sample: PoseSample, profile: ProcessProfile,
                scorer: ScoringEngine) -> Optional[KinematicState]:
        """
        Feed one sample. Only WELDING sessions record anything.

        Args:
            sample: Pose sample for this tick
            profile: Process bands in effect for this sample
            scorer: Provides the per-sample angle score

        Returns:
            KinematicState, or None when not welding
        """
        if not self.welding_active:
            return None

        kinematics = self.tracker.update(sample)
        m = self.metrics

        m.angle_values.append(sample.angle_deg)
        m.angle_scores.append(scorer.angle_score(sample.angle_deg, profile))
        if kinematics.stability is not None:
            m.stability_scores.append(kinematics.stability)
        if kinematics.translation_speed is not None:
            m.speed_values.append(kinematics.translation_speed)
        if sample.distance_cm is not None:
            m.distance_values.append(sample.distance_cm)
            m.approach_speed_values.append(kinematics.approach_speed)
        if kinematics.straightness is not None:
            m.straightness_values.append(kinematics.straightness)

        return kinematics

    def elapsed_ms(self, now_ms: float) -> float:
        """Time since start (frozen once stopped)."""
        if self.start_time_ms is None:
            return 0.0
        end = self.end_time_ms if self.end_time_ms is not None else now_ms
        return max(0.0, end - self.start_time_ms)

    def format_elapsed(self, now_ms: float) -> str:
        return format_elapsed(self.elapsed_ms(now_ms))

    def weld_progress(self, now_ms: float, pass_duration_ms: float = 30000) -> float:
        """Progress of the current weld pass in percent (0 when not welding)."""
        if self.weld_started_ms is None or pass_duration_ms <= 0:
            return 0.0
        return min(100.0, (now_ms - self.weld_started_ms) / pass_duration_ms * 100.0)
