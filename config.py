"""
Weld Coach AR Configuration
===========================

Central configuration file for all pipeline parameters.
Calibration values are approximations tuned by hand, not camera intrinsics.
"""

# =============================================================================
# Camera Settings
# =============================================================================
CAMERA_ID = 0
CAMERA_WIDTH = 1280
CAMERA_HEIGHT = 720
TARGET_FPS = 30

# =============================================================================
# Marker Detection Settings
# =============================================================================
SEARCH_WINDOW_FRACTION = 0.6   # Central part of the frame searched for the marker
MIN_MARKER_AREA_PX = 400       # Smaller dark regions are ignored
MIN_CONTRAST_RATIO = 1.5       # Surrounding brightness / marker brightness
CORNER_ROW_TOLERANCE_PX = 8.0  # Corners closer than this vertically share a row

# =============================================================================
# Pose Estimation Settings
# =============================================================================
CALIBRATION_CONSTANT = 2000.0  # distance_cm = CALIBRATION_CONSTANT / sqrt(area_px)
MIN_DISTANCE_CM = 3.0
MAX_DISTANCE_CM = 200.0
ANGLE_CURVE_GAIN = 6.0         # Saturation rate of the deviation -> angle curve
ANGLE_SMOOTHING = 0.7          # Weight of the previous angle in the EMA

# =============================================================================
# Kinematic Tracker Settings
# =============================================================================
ANGLE_HISTORY_SIZE = 30
MIN_ANGLE_SAMPLES = 10
POSITION_HISTORY_SIZE = 50
MIN_PATH_POINTS = 3
DISTANCE_HISTORY_SIZE = 10
MIN_POSITION_INTERVAL_MS = 100
MIN_PATH_DISPLACEMENT_PX = 10.0
PIXELS_PER_CM = 10.0

# =============================================================================
# Scoring Settings
# =============================================================================
ANGLE_PENALTY_FACTOR = 15.0
RECOMMENDATION_THRESHOLD = 70.0
SCORE_NOISE = 0.0   # 0 = deterministic tier scores
SCORE_SEED = None
WELD_PASS_DURATION_MS = 30000

# =============================================================================
# Feedback Settings (cooldowns in milliseconds)
# =============================================================================
ANGLE_FEEDBACK_COOLDOWN_MS = 500
CALIBRATION_FEEDBACK_COOLDOWN_MS = 800
WELD_FEEDBACK_COOLDOWN_MS = 300
# Haptic pulse while welding
WELD_PULSE_INTERVAL_MS = 2000

# =============================================================================
# Session Defaults
# =============================================================================
PROCESS_KIND = "mig"
MATERIAL = "steel"
SOUND_ENABLED = True
VIBRATION_ENABLED = True
PROFILES_PATH = None  # e.g. "data/process_profiles.yaml"

# =============================================================================
# Display Settings
# =============================================================================
WINDOW_NAME = "Weld Coach AR"
FONT_SCALE = 0.7
TRAIL_LENGTH = 50

# Colors (BGR format)
COLOR_GREEN = (0, 255, 0)
COLOR_YELLOW = (0, 255, 255)
COLOR_RED = (0, 0, 255)
COLOR_ORANGE = (0, 165, 255)
COLOR_WHITE = (255, 255, 255)
COLOR_BLACK = (0, 0, 0)
