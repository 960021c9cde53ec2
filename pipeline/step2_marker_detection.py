"""
Step 2: Marker Detection
Locates the planar marker as the dark, high-contrast quadrilateral closest to
the frame center.

This is a best-effort heuristic, not a fiducial decoder: it does not read the
marker pattern and will miss markers under glare, heavy blur or occlusion.
A miss is reported as `found=False` ("searching"), never as an error.
"""

import functools
import cv2
import numpy as np
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

from utils.geometry import Point, distance, polygon_area


@dataclass(frozen=True)
class Quad:
    """Four marker corners in image space, ordered clockwise from top-left."""
    top_left: Point
    top_right: Point
    bottom_right: Point
    bottom_left: Point

    def as_array(self) -> np.ndarray:
        """Corners as a (4, 2) float array in TL, TR, BR, BL order."""
        return np.array(
            [self.top_left, self.top_right, self.bottom_right, self.bottom_left],
            dtype=float
        )

    @property
    def top_width(self) -> float:
        return distance(self.top_left, self.top_right)

    @property
    def bottom_width(self) -> float:
        return distance(self.bottom_left, self.bottom_right)

    @property
    def left_height(self) -> float:
        return distance(self.top_left, self.bottom_left)

    @property
    def right_height(self) -> float:
        return distance(self.top_right, self.bottom_right)

    @property
    def area(self) -> float:
        return polygon_area(self.as_array())

    @property
    def center(self) -> Point:
        c = self.as_array().mean(axis=0)
        return float(c[0]), float(c[1])


def order_corners(
    points: Sequence[Sequence[float]],
    row_tolerance: float = 8.0
) -> Optional[Quad]:
    """
    Order four points into a Quad.

    Points are sorted top to bottom; two points whose vertical positions differ
    by no more than `row_tolerance` are treated as the same row and sorted left
    to right. The upper pair then gives TL/TR and the lower pair BL/BR.

    Returns:
        Quad, or None unless exactly four finite points are given
    """
    try:
        pts = np.asarray(points, dtype=float)
    except (TypeError, ValueError):
        return None
    if pts.size != 8:
        return None
    pts = pts.reshape(4, 2)
    if not np.all(np.isfinite(pts)):
        return None

    def compare(a, b):
        if abs(a[1] - b[1]) > row_tolerance:
            return -1 if a[1] < b[1] else 1
        if a[0] != b[0]:
            return -1 if a[0] < b[0] else 1
        return 0

    ordered = sorted(
        [(float(x), float(y)) for x, y in pts],
        key=functools.cmp_to_key(compare)
    )
    top = sorted(ordered[:2], key=lambda p: p[0])
    bottom = sorted(ordered[2:], key=lambda p: p[0])

    return Quad(
        top_left=top[0],
        top_right=top[1],
        bottom_right=bottom[1],
        bottom_left=bottom[0]
    )


@dataclass
class MarkerDetection:
    """Marker detection result."""
    found: bool
    quad: Optional[Quad] = None
    area_px: float = 0.0
    contrast: float = 0.0


class MarkerDetector:
    """
    Dark-quad marker detector.

    Searches a centered window for dark connected regions (Otsu threshold),
    keeps regions with enough area and contrast against their surroundings,
    and accepts the one nearest the window center whose outline simplifies to
    exactly four corners.
    """

    # Width of the ring around a region used to measure background brightness
    RING_PX = 15
    # Polygon approximation tolerance relative to the contour perimeter
    APPROX_EPSILON = 0.04

    def __init__(
        self,
        search_fraction: float = 0.6,
        min_area_px: float = 400,
        min_contrast_ratio: float = 1.5,
        row_tolerance_px: float = 8.0
    ):
        """
        Initialize marker detector.

        Args:
            search_fraction: Fraction of frame width/height searched, centered
            min_area_px: Minimum region area in pixels
            min_contrast_ratio: Minimum surrounding/region brightness ratio
            row_tolerance_px: Corner ordering row tolerance
        """
        self.search_fraction = min(1.0, max(0.05, search_fraction))
        self.min_area_px = min_area_px
        self.min_contrast_ratio = min_contrast_ratio
        self.row_tolerance_px = row_tolerance_px

    def _search_window(self, shape) -> Tuple[int, int, int, int]:
        h, w = shape[:2]
        ww = max(1, int(w * self.search_fraction))
        wh = max(1, int(h * self.search_fraction))
        return (w - ww) // 2, (h - wh) // 2, ww, wh

    @staticmethod
    def _to_gray(frame: np.ndarray) -> np.ndarray:
        if frame.ndim == 3:
            if frame.shape[2] == 4:
                frame = cv2.cvtColor(frame, cv2.COLOR_BGRA2GRAY)
            else:
                frame = cv2.cvtColor(frame, cv2.COLOR_BGR2GRAY)
        if frame.dtype != np.uint8:
            frame = np.clip(frame, 0, 255).astype(np.uint8)
        return frame

    def _contrast(self, gray: np.ndarray, contour: np.ndarray) -> float:
        """Mean brightness of the surrounding ring over the region's."""
        region = np.zeros_like(gray)
        cv2.drawContours(region, [contour], -1, 255, thickness=-1)

        kernel = np.ones((self.RING_PX, self.RING_PX), dtype=np.uint8)
        ring = cv2.subtract(cv2.dilate(region, kernel), region)
        if cv2.countNonZero(ring) == 0:
            return 0.0

        inside_mean = cv2.mean(gray, mask=region)[0]
        ring_mean = cv2.mean(gray, mask=ring)[0]
        return (ring_mean + 1.0) / (inside_mean + 1.0)

    def detect(self, frame: Optional[np.ndarray]) -> MarkerDetection:
        """
        Detect the marker in one frame.

        Args:
            frame: BGR, BGRA or grayscale image

        Returns:
            MarkerDetection (found=False when nothing qualifies)
        """
        if frame is None or frame.size == 0 or frame.ndim not in (2, 3):
            return MarkerDetection(found=False)

        gray = self._to_gray(frame)
        x0, y0, ww, wh = self._search_window(gray.shape)
        roi = gray[y0:y0 + wh, x0:x0 + ww]
        if roi.shape[0] < 3 or roi.shape[1] < 3:
            return MarkerDetection(found=False)

        blurred = cv2.GaussianBlur(roi, (5, 5), 0)
        _, mask = cv2.threshold(blurred, 0, 255, cv2.THRESH_BINARY_INV + cv2.THRESH_OTSU)
        contours = cv2.findContours(mask, cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_SIMPLE)[-2]

        center = (ww / 2.0, wh / 2.0)
        candidates = []
        for contour in contours:
            area = cv2.contourArea(contour)
            if area < self.min_area_px:
                continue
            moments = cv2.moments(contour)
            if moments['m00'] == 0:
                continue
            centroid = (moments['m10'] / moments['m00'], moments['m01'] / moments['m00'])
            candidates.append((distance(centroid, center), area, contour))

        # Nearest to center first
        candidates.sort(key=lambda c: c[0])

        offset = np.array([[x0, y0]], dtype=np.int32)
        for _, area, contour in candidates:
            perimeter = cv2.arcLength(contour, True)
            approx = cv2.approxPolyDP(contour, self.APPROX_EPSILON * perimeter, True)
            if len(approx) != 4:
                continue

            full_contour = contour.reshape(-1, 2) + offset
            contrast = self._contrast(gray, full_contour.reshape(-1, 1, 2))
            if contrast < self.min_contrast_ratio:
                continue

            quad = order_corners(approx.reshape(-1, 2) + offset, self.row_tolerance_px)
            if quad is None:
                continue

            return MarkerDetection(found=True, quad=quad, area_px=float(area), contrast=contrast)

        return MarkerDetection(found=False)
