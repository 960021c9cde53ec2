"""End-to-end tests for the welding engine, driver and report output."""
import sys
import os
import argparse
import io
import json
import tempfile
import unittest
from dataclasses import replace
from pathlib import Path
from unittest.mock import patch

import cv2
import numpy as np

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import config
import main
from pipeline.engine import WeldingEngine, build_pose_source
from pipeline.feedback import FeedbackDispatcher, FeedbackEvent, FeedbackSink
from pipeline.process_profiles import DEFAULT_PROFILES, ProcessKind
from pipeline.settings import WeldSettings
from pipeline.step1_frame_capture import ArrayCapture, FrameInput, NullCapture
from pipeline.step3_pose_estimation import (
    DeviceTiltSource, FallbackPoseSource, PoseSource, SimulatedSource,
)
from pipeline.step6_session import SessionState
from utils.report import format_report, results_to_dict, save_report
from utils.visualization import (
    draw_angle_gauge, draw_metrics_panel, draw_results, draw_status_overlay, draw_trajectory,
)


class RecordingSink(FeedbackSink):
    def __init__(self):
        self.events = []

    def emit(self, event):
        self.events.append(event)


class BrokenSource(PoseSource):
    def estimate(self, frame):
        raise RuntimeError("sensor read failed")


def marker_frame(x_offset=0):
    frame = np.full((720, 1280, 3), 255, dtype=np.uint8)
    cv2.rectangle(frame, (590 + x_offset, 310), (689 + x_offset, 409), (0, 0, 0), -1)
    return frame


class TestWeldingEngine(unittest.TestCase):
    """WeldingEngine.tick() and session controls."""

    def setUp(self):
        self.audio = RecordingSink()
        self.engine = WeldingEngine(
            SimulatedSource(seed=7),
            feedback=FeedbackDispatcher(audio_sink=self.audio),
        )

    def run_ticks(self, count, start_ms=0.0, step_ms=33.0):
        ticks = []
        for i in range(count):
            ticks.append(self.engine.tick(FrameInput(timestamp_ms=start_ms + i * step_ms)))
        return ticks

    def test_idle_ticks_record_nothing(self):
        tick = self.run_ticks(5)[-1]
        self.assertIs(tick.state, SessionState.IDLE)
        self.assertIsNone(tick.kinematics)
        self.assertIsNone(tick.live_score)
        self.assertEqual(tick.status, "IDLE")
        self.assertEqual(self.engine.session.metrics.sample_count, 0)

    def test_welding_session(self):
        self.engine.begin_welding(0)
        ticks = self.run_ticks(60)
        results = self.engine.stop(60 * 33)

        self.assertIs(ticks[-1].state, SessionState.WELDING)
        self.assertIsNotNone(ticks[-1].kinematics.stability)
        self.assertIsNotNone(ticks[-1].live_score)
        self.assertTrue(results.has_data)
        self.assertEqual(results.sample_count, 60)
        self.assertGreaterEqual(results.final_score, 0)
        self.assertLessEqual(results.final_score, 100)
        self.assertIs(self.engine.results, results)
        self.assertEqual(self.audio.events[0], FeedbackEvent.WELD_STARTED)

    def test_paused_ticks_are_not_recorded(self):
        self.engine.begin_welding(0)
        self.run_ticks(10)
        self.engine.pause_welding(330)
        self.run_ticks(10, start_ms=400)
        self.assertEqual(self.engine.session.metrics.sample_count, 10)
        self.assertIs(self.engine.session.state, SessionState.PAUSED)

    def test_same_input_same_results(self):
        other = WeldingEngine(SimulatedSource(seed=7))
        for engine in (self.engine, other):
            engine.begin_welding(0)
            for i in range(90):
                engine.tick(FrameInput(timestamp_ms=i * 33.0))
        self.assertEqual(self.engine.stop(3000), other.stop(3000))

    def test_broken_source_is_searching(self):
        engine = WeldingEngine(BrokenSource())
        engine.begin_welding(0)
        with self.assertLogs('pipeline.engine', level='WARNING'):
            tick = engine.tick(FrameInput(timestamp_ms=0))
        self.assertEqual(tick.status, "SEARCHING")
        self.assertEqual(engine.session.metrics.sample_count, 0)

    def test_vision_engine_on_marker_frames(self):
        engine = WeldingEngine.from_config(build_pose_source("vision"))
        capture = ArrayCapture([marker_frame(x_offset=i * 2) for i in range(15)])
        engine.begin_welding(0)

        t = 0.0
        tick = None
        while capture.is_opened():
            tick = engine.tick(capture.read_input(timestamp_ms=t))
            t += 100.0

        self.assertTrue(tick.estimate.found)
        self.assertEqual(tick.estimate.source, "vision")
        self.assertAlmostEqual(tick.estimate.distance_cm, 20.0, delta=1.0)
        self.assertEqual(len(engine.session.tracker.path()), 15)
        self.assertEqual(engine.session.metrics.sample_count, 15)

    def test_calibrate_tilt(self):
        engine = WeldingEngine(FallbackPoseSource([DeviceTiltSource()]),
                               feedback=FeedbackDispatcher(audio_sink=self.audio))
        self.assertFalse(engine.calibrate(0))

        engine.tick(FrameInput(timestamp_ms=0, tilt_deg=30.0))
        self.assertTrue(engine.calibrate(10))
        tick = engine.tick(FrameInput(timestamp_ms=20, tilt_deg=42.0))
        self.assertEqual(tick.estimate.angle_deg, 12.0)
        self.assertIn(FeedbackEvent.CALIBRATION_CONFIRMED, self.audio.events)

    def test_switch_process(self):
        profile = self.engine.set_process_kind("C")
        self.assertIs(profile.kind, ProcessKind.STICK)
        self.engine.begin_welding(0)
        self.run_ticks(5)
        self.assertIs(self.engine.stop(200).process_kind, ProcessKind.STICK)

    def test_switch_process_mid_session_keeps_recorded_scores(self):
        engine = WeldingEngine(DeviceTiltSource())
        engine.begin_welding(0)
        for i in range(5):
            engine.tick(FrameInput(timestamp_ms=i * 100.0, tilt_deg=20.0))

        engine.set_process_kind(ProcessKind.STICK)
        for i in range(5, 10):
            engine.tick(FrameInput(timestamp_ms=i * 100.0, tilt_deg=20.0))

        # 20 deg is inside the MIG band; 5 deg above the stick band costs 75
        self.assertEqual(engine.session.metrics.angle_scores, [100.0] * 5 + [25.0] * 5)
        results = engine.stop(1000)
        self.assertIs(results.process_kind, ProcessKind.STICK)
        self.assertAlmostEqual(results.metrics['angle'].score, 62.5)

    def test_weld_pulse_every_two_seconds_while_welding(self):
        haptic = RecordingSink()
        engine = WeldingEngine(DeviceTiltSource(), feedback=FeedbackDispatcher(haptic_sink=haptic))
        for t in range(0, 1000, 100):
            engine.tick(FrameInput(timestamp_ms=float(t), tilt_deg=20.0))

        engine.begin_welding(1000)
        for t in range(1000, 6000, 100):
            # Ticks without a reading still pulse
            tilt = None if t >= 4500 else 20.0
            engine.tick(FrameInput(timestamp_ms=float(t), tilt_deg=tilt))

        engine.pause_welding(6000)
        for t in range(6000, 10000, 100):
            engine.tick(FrameInput(timestamp_ms=float(t), tilt_deg=20.0))

        pulses = [e for e in haptic.events if e is FeedbackEvent.WELD_PULSE]
        self.assertEqual(len(pulses), 2)
        self.assertIn(FeedbackEvent.WELD_STARTED, haptic.events)

    def test_simulated_distance_follows_profile(self):
        source = build_pose_source("simulated", seed=2, profile=DEFAULT_PROFILES[ProcessKind.STICK])
        for i in range(30):
            estimate = source.estimate(FrameInput(timestamp_ms=i * 33.0))
            self.assertGreaterEqual(estimate.distance_cm, 5.0)
            self.assertLessEqual(estimate.distance_cm, 10.0)

    def test_unknown_pose_source_mode(self):
        with self.assertRaises(ValueError):
            build_pose_source("lidar")


class TestDriver(unittest.TestCase):
    """main.WeldCoachApp and CLI helpers."""

    def setUp(self):
        self.engine = WeldingEngine(SimulatedSource(seed=1), settings=WeldSettings(sound_enabled=False))
        self.app = main.WeldCoachApp(self.engine, fps=30)

    def test_headless_run(self):
        results = self.app.run_headless(NullCapture(), duration_s=2.0)

        self.assertTrue(results.has_data)
        self.assertEqual(results.sample_count, 60)
        self.assertIs(self.engine.session.state, SessionState.STOPPED)
        self.assertEqual(self.app.elapsed_text, "00:01")

    def test_headless_tilt_replay_stops_when_readings_end(self):
        engine = WeldingEngine(DeviceTiltSource())
        app = main.WeldCoachApp(engine, fps=10)
        results = app.run_headless(NullCapture(), duration_s=5.0, tilt_readings=iter([18.0] * 12))

        self.assertEqual(results.sample_count, 12)
        self.assertFalse(results.metrics['speed'].available)
        self.assertEqual(results.metrics['angle'].score, 100.0)

    def test_key_controls(self):
        self.assertTrue(self.app.handle_key(ord(' '), 0))
        self.assertIs(self.engine.session.state, SessionState.WELDING)
        self.app.handle_key(ord(' '), 100)
        self.assertIs(self.engine.session.state, SessionState.PAUSED)

        self.app.handle_key(ord('p'), 200)
        self.assertIs(self.engine.settings.process_kind, ProcessKind.TIG)
        self.app.handle_key(ord('m'), 300)
        self.assertTrue(self.engine.settings.sound_enabled)

        self.app.handle_key(ord('e'), 400)
        self.assertIs(self.engine.session.state, SessionState.STOPPED)
        self.assertTrue(self.app.show_results)
        self.assertFalse(self.app.handle_key(ord('q'), 500))

    def test_render_overlay(self):
        self.engine.begin_welding(0)
        tick = self.engine.tick(FrameInput(timestamp_ms=0))
        frame = self.app.render(None, tick, fps=30.0)
        self.assertEqual(frame.shape, (720, 1280, 3))

    def test_read_tilt_log(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            path = Path(temp_dir) / "tilt.txt"
            path.write_text("# t_ms,deg\n0,12.5\n\n33,13\n", encoding='utf-8')
            self.assertEqual(main.read_tilt_log(str(path)), [12.5, 13.0])

    def test_parse_args(self):
        args = main.parse_args(['--simulate', '--headless', '--process', 'B', '--seed', '3'])
        self.assertTrue(args.simulate)
        self.assertEqual(args.process, 'B')
        self.assertEqual(args.seed, 3)
        self.assertIsNone(args.fps)

    def test_tick_rate(self):
        video = NullCapture()
        video.fps = 25.0
        self.assertEqual(main.tick_rate(argparse.Namespace(fps=None), video), 25)
        self.assertEqual(main.tick_rate(argparse.Namespace(fps=12), video), 12)
        self.assertEqual(main.tick_rate(argparse.Namespace(fps=None), NullCapture()), config.TARGET_FPS)

        video.fps = 0.0
        self.assertEqual(main.tick_rate(argparse.Namespace(fps=None), video), config.TARGET_FPS)

    def test_end_key_prints_report_once(self):
        self.app.handle_key(ord(' '), 0)
        with patch('sys.stdout', new_callable=io.StringIO) as out:
            self.app.handle_key(ord('e'), 100)
            self.app.handle_key(ord('e'), 200)
        self.assertEqual(out.getvalue().count("Recommendations:"), 1)
        self.assertIs(self.app.shown_results, self.engine.results)

    def test_headless_main_prints_report_once(self):
        with patch('sys.stdout', new_callable=io.StringIO) as out:
            main.main(['--simulate', '--headless', '--duration', '1', '--seed', '1',
                       '--log-level', 'ERROR'])
        self.assertEqual(out.getvalue().count("Recommendations:"), 1)


class TestReport(unittest.TestCase):
    """utils.report and overlay helpers."""

    def setUp(self):
        engine = WeldingEngine(SimulatedSource(seed=5))
        engine.begin_welding(0)
        for i in range(60):
            engine.tick(FrameInput(timestamp_ms=i * 100.0))
        self.results = engine.stop(6000)

        empty = WeldingEngine(SimulatedSource(seed=5))
        empty.start(0)
        self.empty_results = empty.stop(1000)

    def test_format_report(self):
        text = format_report(self.results)
        self.assertIn("(MIG/MAG)", text)
        self.assertIn(f"Score: {self.results.final_score}/100", text)
        self.assertIn("Duration: 00:06", text)
        self.assertIn("Recommendations:", text)

    def test_report_uses_profile_display_name(self):
        profiles = dict(DEFAULT_PROFILES)
        profiles[ProcessKind.MIG] = replace(DEFAULT_PROFILES[ProcessKind.MIG], display_name="GMAW")
        engine = WeldingEngine(SimulatedSource(seed=5), profiles=profiles)
        engine.begin_welding(0)
        for i in range(20):
            engine.tick(FrameInput(timestamp_ms=i * 100.0))
        results = engine.stop(2000)

        self.assertEqual(results.process_name, "GMAW")
        self.assertIn("(GMAW)", format_report(results))
        self.assertNotIn("MIG/MAG", format_report(results))
        self.assertEqual(results_to_dict(results)['process_name'], "GMAW")

    def test_format_report_no_data(self):
        text = format_report(self.empty_results)
        self.assertIn("Score: --", text)
        self.assertIn("Angle: --", text)
        self.assertNotIn("nan", text.lower())

    def test_save_report_json_and_text(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            json_path = save_report(self.results, str(Path(temp_dir) / "out" / "results.json"))
            data = json.loads(json_path.read_text(encoding='utf-8'))
            self.assertEqual(data['final_score'], self.results.final_score)
            self.assertEqual(data['process_kind'], 'mig')

            text_path = save_report(self.empty_results, str(Path(temp_dir) / "results.txt"))
            self.assertIn("Score: --", text_path.read_text(encoding='utf-8'))

    def test_results_to_dict_no_data(self):
        data = results_to_dict(self.empty_results)
        self.assertIsNone(data['final_score'])
        self.assertIsNone(data['metrics']['angle']['score'])

    def test_overlay_helpers_keep_shape(self):
        frame = np.zeros((480, 640, 3), dtype=np.uint8)
        profile = WeldingEngine(SimulatedSource()).profile
        outputs = [
            draw_trajectory(frame, [(10, 10), (50, 20), (90, 15)]),
            draw_angle_gauge(frame, 18.0, profile.optimal_angle),
            draw_angle_gauge(frame, None, profile.optimal_angle),
            draw_metrics_panel(frame, None, None, None),
            draw_status_overlay(frame, "WELDING", "00:12", 30.0, "MIG/MAG", 40.0),
            draw_results(frame, format_report(self.results)),
        ]
        for output in outputs:
            self.assertEqual(output.shape, frame.shape)


if __name__ == '__main__':
    unittest.main()
