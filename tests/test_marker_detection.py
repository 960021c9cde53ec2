"""Tests for marker detection and corner ordering."""
import sys
import os
import unittest

import cv2
import numpy as np

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from pipeline.step2_marker_detection import MarkerDetector, Quad, order_corners


def blank_frame(value=255, width=1280, height=720):
    return np.full((height, width, 3), value, dtype=np.uint8)


def frame_with_square(size=100, value=0, background=255, center=(640, 360)):
    frame = blank_frame(background)
    cx, cy = center
    half = size // 2
    cv2.rectangle(frame, (cx - half, cy - half), (cx + half - 1, cy + half - 1),
                  (value, value, value), -1)
    return frame


class TestOrderCorners(unittest.TestCase):
    """order_corners()"""

    def test_shuffled_square(self):
        quad = order_corners([(100, 100), (0, 100), (100, 0), (0, 0)])
        self.assertEqual(quad.top_left, (0.0, 0.0))
        self.assertEqual(quad.top_right, (100.0, 0.0))
        self.assertEqual(quad.bottom_right, (100.0, 100.0))
        self.assertEqual(quad.bottom_left, (0.0, 100.0))

    def test_slightly_rotated_rows(self):
        # Right corner sits 5 px higher than the left one: same row within tolerance
        quad = order_corners([(0, 5), (100, 0), (105, 100), (5, 105)], row_tolerance=8.0)
        self.assertEqual(quad.top_left, (0.0, 5.0))
        self.assertEqual(quad.top_right, (100.0, 0.0))
        self.assertEqual(quad.bottom_left, (5.0, 105.0))
        self.assertEqual(quad.bottom_right, (105.0, 100.0))

    def test_malformed_input_returns_none(self):
        self.assertIsNone(order_corners([(0, 0), (1, 0), (1, 1)]))
        self.assertIsNone(order_corners([(0, 0), (1, 0), (1, 1), (float('nan'), 1)]))
        self.assertIsNone(order_corners("not points"))
        self.assertIsNone(order_corners([]))

    def test_quad_geometry(self):
        quad = order_corners([(0, 0), (80, 0), (80, 40), (0, 40)])
        self.assertAlmostEqual(quad.top_width, 80)
        self.assertAlmostEqual(quad.left_height, 40)
        self.assertAlmostEqual(quad.area, 3200)
        self.assertEqual(quad.center, (40.0, 20.0))


class TestMarkerDetector(unittest.TestCase):
    """MarkerDetector.detect()"""

    def setUp(self):
        self.detector = MarkerDetector()

    def test_finds_dark_square_at_center(self):
        detection = self.detector.detect(frame_with_square(size=100))

        self.assertTrue(detection.found)
        self.assertIsInstance(detection.quad, Quad)
        self.assertGreater(detection.contrast, self.detector.min_contrast_ratio)
        self.assertAlmostEqual(detection.quad.area, 100 * 100, delta=600)

        tl_x, tl_y = detection.quad.top_left
        self.assertAlmostEqual(tl_x, 590, delta=3)
        self.assertAlmostEqual(tl_y, 310, delta=3)
        cx, cy = detection.quad.center
        self.assertAlmostEqual(cx, 640, delta=3)
        self.assertAlmostEqual(cy, 360, delta=3)

    def test_grayscale_input(self):
        gray = cv2.cvtColor(frame_with_square(), cv2.COLOR_BGR2GRAY)
        self.assertTrue(self.detector.detect(gray).found)

    def test_uniform_frame_not_found(self):
        self.assertFalse(self.detector.detect(blank_frame(255)).found)
        self.assertFalse(self.detector.detect(blank_frame(0)).found)

    def test_tiny_region_not_found(self):
        self.assertFalse(self.detector.detect(frame_with_square(size=10)).found)

    def test_low_contrast_not_found(self):
        frame = frame_with_square(size=100, value=180, background=200)
        self.assertFalse(self.detector.detect(frame).found)

    def test_marker_outside_search_window_not_found(self):
        frame = frame_with_square(size=100, center=(80, 80))
        self.assertFalse(self.detector.detect(frame).found)

    def test_invalid_frames(self):
        self.assertFalse(self.detector.detect(None).found)
        self.assertFalse(self.detector.detect(np.zeros((0, 0, 3), dtype=np.uint8)).found)

    def test_trapezoid_keeps_corner_order(self):
        frame = blank_frame()
        pts = np.array([[600, 310], [680, 310], [700, 410], [580, 410]], dtype=np.int32)
        cv2.fillPoly(frame, [pts], (0, 0, 0))

        detection = self.detector.detect(frame)

        self.assertTrue(detection.found)
        self.assertLess(detection.quad.top_width, detection.quad.bottom_width)


if __name__ == '__main__':
    unittest.main()
