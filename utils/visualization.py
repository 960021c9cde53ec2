"""
Utils: Visualization
Drawing helpers for the overlay: marker outline, torch trail, angle gauge,
metric panel and status bar. Purely presentational.
"""

import math
import cv2
import numpy as np
from typing import Optional, Sequence, Tuple

import config
from pipeline.process_profiles import Band


def angle_color(angle: float, band: Band) -> Tuple[int, int, int]:
    """Green inside the band, yellow below, red above."""
    if band.contains(angle):
        return config.COLOR_GREEN
    if angle < band.min:
        return config.COLOR_YELLOW
    return config.COLOR_RED


def score_color(score: Optional[float]) -> Tuple[int, int, int]:
    if score is None:
        return config.COLOR_WHITE
    if score >= 80:
        return config.COLOR_GREEN
    if score >= 60:
        return config.COLOR_YELLOW
    return config.COLOR_RED


def draw_marker_outline(frame: np.ndarray, quad) -> np.ndarray:
    """Outline the detected marker and mark its top-left corner."""
    if quad is None:
        return frame
    frame_copy = frame.copy()
    pts = np.round(quad.as_array()).astype(np.int32).reshape(-1, 1, 2)
    cv2.polylines(frame_copy, [pts], True, config.COLOR_GREEN, 2)
    tl = tuple(int(v) for v in np.round(quad.top_left))
    cv2.circle(frame_copy, tl, 5, config.COLOR_ORANGE, -1)
    return frame_copy


def draw_trajectory(frame: np.ndarray, points: Sequence[Tuple[float, float]]) -> np.ndarray:
    """Draw the torch trail, fading from old to new."""
    points = list(points)[-config.TRAIL_LENGTH:]
    if len(points) < 2:
        return frame
    frame_copy = frame.copy()
    n = len(points)
    for i in range(1, n):
        p0 = tuple(int(round(v)) for v in points[i - 1])
        p1 = tuple(int(round(v)) for v in points[i])
        intensity = int(80 + 175 * i / (n - 1))
        cv2.line(frame_copy, p0, p1, (0, intensity, intensity), 2)
    return frame_copy


def draw_angle_gauge(
    frame: np.ndarray,
    angle: Optional[float],
    band: Band,
    center: Optional[Tuple[int, int]] = None,
    radius: int = 80
) -> np.ndarray:
    """
    Draw the optimal-band arc and a needle for the current angle.

    0° points straight up, 90° points right.
    """
    frame_copy = frame.copy()
    h, w = frame_copy.shape[:2]
    if center is None:
        center = (w // 2, h // 2)

    # OpenCV ellipse angles: 0 = +x axis, clockwise; our 0° is up (-90)
    cv2.ellipse(frame_copy, center, (radius, radius), 0,
                band.min - 90, band.max - 90, (0, 120, 0), 6)

    # Crosshair
    cx, cy = center
    cv2.line(frame_copy, (cx - 40, cy), (cx + 40, cy), config.COLOR_GREEN, 1)
    cv2.line(frame_copy, (cx, cy - 40), (cx, cy + 40), config.COLOR_GREEN, 1)

    if angle is None:
        return frame_copy

    rad = math.radians(angle - 90)
    tip = (int(cx + math.cos(rad) * (radius + 20)), int(cy + math.sin(rad) * (radius + 20)))
    color = angle_color(angle, band)
    cv2.line(frame_copy, center, tip, color, 4)
    # Hershey fonts have no degree glyph
    cv2.putText(frame_copy, f"{angle:.0f} deg", (cx + radius + 10, cy - 10),
                cv2.FONT_HERSHEY_SIMPLEX, config.FONT_SCALE, color, 2)
    return frame_copy


def _fmt(value: Optional[float], fmt: str, unit: str = "") -> str:
    return "--" if value is None else f"{value:{fmt}}{unit}"


def draw_metrics_panel(
    frame: np.ndarray,
    distance_cm: Optional[float],
    kinematics,
    live_score: Optional[float]
) -> np.ndarray:
    """Right-hand panel of live values; unavailable values show '--'."""
    frame_copy = frame.copy()
    h, w = frame_copy.shape[:2]
    x = max(10, w - 260)

    speed = approach = stability = straightness = None
    if kinematics is not None:
        speed = kinematics.translation_speed
        approach = kinematics.approach_speed
        stability = kinematics.stability
        straightness = kinematics.straightness

    rows = [
        ("Distance", _fmt(distance_cm, ".1f", " cm"), config.COLOR_WHITE),
        ("Speed", _fmt(speed, ".1f", " cm/s"), config.COLOR_WHITE),
        ("Approach", _fmt(approach, "+.1f", " cm/s"), config.COLOR_WHITE),
        ("Stability", _fmt(stability, ".0f", "%"), score_color(stability)),
        ("Straightness", _fmt(straightness, ".0f", "%"), score_color(straightness)),
        ("Score", _fmt(live_score, ".0f"), score_color(live_score)),
    ]

    cv2.rectangle(frame_copy, (x - 10, 10), (w - 10, 20 + 28 * len(rows)), config.COLOR_BLACK, -1)
    for i, (label, value, color) in enumerate(rows):
        y = 35 + 28 * i
        cv2.putText(frame_copy, f"{label}: {value}", (x, y),
                    cv2.FONT_HERSHEY_SIMPLEX, 0.6, color, 1)
    return frame_copy


def draw_status_overlay(
    frame: np.ndarray,
    status: str,
    elapsed: str,
    fps: float,
    process_name: str = "",
    weld_progress: float = 0.0
) -> np.ndarray:
    """Status text, session timer, FPS and the weld-pass progress bar."""
    frame_copy = frame.copy()
    h, w = frame_copy.shape[:2]

    color = config.COLOR_GREEN if status == 'WELDING' else config.COLOR_ORANGE
    cv2.putText(frame_copy, f"{process_name} {status}".strip(), (10, 30),
                cv2.FONT_HERSHEY_SIMPLEX, config.FONT_SCALE, color, 2)
    cv2.putText(frame_copy, f"Time: {elapsed}", (10, 60),
                cv2.FONT_HERSHEY_SIMPLEX, config.FONT_SCALE, config.COLOR_WHITE, 2)
    cv2.putText(frame_copy, f"FPS: {fps:.0f}", (10, 90),
                cv2.FONT_HERSHEY_SIMPLEX, 0.6, config.COLOR_WHITE, 1)

    if weld_progress > 0:
        bar_w = int((w - 20) * min(100.0, weld_progress) / 100.0)
        cv2.rectangle(frame_copy, (10, h - 20), (w - 10, h - 10), config.COLOR_WHITE, 1)
        cv2.rectangle(frame_copy, (10, h - 20), (10 + bar_w, h - 10), config.COLOR_ORANGE, -1)

    return frame_copy


def draw_results(frame: np.ndarray, report_text: str) -> np.ndarray:
    """Overlay the plain-text report on a dark box."""
    frame_copy = frame.copy()
    h, w = frame_copy.shape[:2]
    lines = report_text.replace("°", " deg").splitlines()
    box_h = min(h - 20, 20 + 24 * len(lines))
    cv2.rectangle(frame_copy, (10, 10), (w - 10, 10 + box_h), config.COLOR_BLACK, -1)
    for i, line in enumerate(lines):
        y = 35 + 24 * i
        if y > h - 10:
            break
        cv2.putText(frame_copy, line, (20, y), cv2.FONT_HERSHEY_SIMPLEX, 0.55, config.COLOR_WHITE, 1)
    return frame_copy
