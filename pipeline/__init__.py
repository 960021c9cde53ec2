"""
Weld Coach AR Pipeline

6-Step Pipeline:
1. Frame Capture - Capture frames (and tilt readings) per tick
2. Marker Detection - Find the dark marker quad near the frame center
3. Pose Estimation - Marker geometry or device tilt -> angle & distance
4. Kinematic Tracking - Speed, approach, stability, straightness
5. Scoring - Per-metric scores, final score, recommendations
6. Session - Evaluation lifecycle and metric recording
"""

from .step1_frame_capture import FrameCapture, FrameInput, VideoCapture, WebcamCapture
from .step2_marker_detection import MarkerDetector, Quad
from .step3_pose_estimation import PoseEstimate, PoseEstimator, PoseSample, PoseSource
from .step4_kinematic_tracker import KinematicState, KinematicTracker
from .step5_scorer import Results, ScoringEngine
from .step6_session import EvaluationSession, SessionState
from .engine import WeldingEngine

__all__ = [
    'FrameCapture',
    'FrameInput',
    'VideoCapture',
    'WebcamCapture',
    'MarkerDetector',
    'Quad',
    'PoseEstimate',
    'PoseEstimator',
    'PoseSample',
    'PoseSource',
    'KinematicState',
    'KinematicTracker',
    'Results',
    'ScoringEngine',
    'EvaluationSession',
    'SessionState',
    'WeldingEngine',
]
