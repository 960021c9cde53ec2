"""
Weld Coach AR - Welding Technique Trainer
==========================================

Pipeline (one pass per frame tick):
1. Frame Capture - Get frames from webcam/video (and tilt readings)
2. Marker Detection - Find the dark marker quad near the frame center
3. Pose Estimation - Marker geometry (or tilt sensor) -> angle & distance
4. Kinematic Tracking - Speed, approach, stability, straightness
5. Scoring - Session score and recommendations on stop
6. Session - IDLE -> ACTIVE -> WELDING <-> PAUSED -> STOPPED

Usage:
    python main.py                          # Webcam, marker tracking
    python main.py --video pass.mp4         # Video file
    python main.py --simulate               # No camera, synthetic motion
    python main.py --simulate --headless --duration 20 --report out.json
    python main.py --tilt-log readings.txt  # Replay tilt readings (deg per line)

Controls:
    SPACE - Start / pause welding
    S     - Start a new evaluation
    E     - End evaluation and show results
    C     - Calibrate tilt zero
    P     - Next process (MIG -> TIG -> Stick)
    M / V - Toggle sound / vibration
    Q     - Quit
"""

import argparse
import logging
import time
from typing import Iterator, List, Optional

import cv2
import numpy as np

import config
from pipeline.engine import TickResult, WeldingEngine, build_pose_source
from pipeline.feedback import LoggingFeedbackSink, TerminalBellSink
from pipeline.process_profiles import ProcessKind, load_profiles
from pipeline.settings import load_settings
from pipeline.step1_frame_capture import (
    FrameCapture, ImageCapture, NullCapture, VideoCapture, WebcamCapture, now_ms,
)
from pipeline.step5_scorer import Results
from utils.report import format_report, save_report
from utils.visualization import (
    draw_angle_gauge, draw_marker_outline, draw_metrics_panel,
    draw_results, draw_status_overlay, draw_trajectory,
)


def read_tilt_log(path: str) -> List[float]:
    """One tilt reading (degrees) per line; blank lines and # comments skipped."""
    readings = []
    with open(path, 'r', encoding='utf-8') as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith('#'):
                continue
            readings.append(float(line.split(',')[-1]))
    return readings


class WeldCoachApp:
    """Owns the tick loop: capture -> engine.tick -> overlay, plus a 1 Hz timer."""

    def __init__(self, engine: WeldingEngine, fps: int = config.TARGET_FPS):
        self.engine = engine
        self.fps = max(1, fps)
        self.elapsed_text = "00:00"
        self._last_timer_ms: Optional[float] = None
        self.show_results = False
        # Results already printed from the E key
        self.shown_results: Optional[Results] = None

    def _on_timer(self, now: float) -> None:
        """Elapsed-time refresh, about once per second. Read-only."""
        if self._last_timer_ms is not None and now - self._last_timer_ms < 1000:
            return
        self._last_timer_ms = now
        self.elapsed_text = self.engine.session.format_elapsed(now)

    def render(self, frame: Optional[np.ndarray], tick: TickResult, fps: float) -> np.ndarray:
        """Draw the overlay for one tick."""
        if frame is None:
            frame = np.zeros((config.CAMERA_HEIGHT, config.CAMERA_WIDTH, 3), dtype=np.uint8)

        profile = self.engine.profile
        annotated = draw_marker_outline(frame, tick.estimate.quad)
        annotated = draw_trajectory(annotated, self.engine.session.tracker.path())
        annotated = draw_angle_gauge(annotated, tick.estimate.angle_deg, profile.optimal_angle)
        annotated = draw_metrics_panel(annotated, tick.estimate.distance_cm,
                                       tick.kinematics, tick.live_score)
        annotated = draw_status_overlay(
            annotated, tick.status, self.elapsed_text, fps,
            process_name=profile.display_name,
            weld_progress=self.engine.session.weld_progress(tick.timestamp_ms, config.WELD_PASS_DURATION_MS)
        )
        if self.show_results and self.engine.results is not None:
            annotated = draw_results(annotated, format_report(self.engine.results))
        return annotated

    def handle_key(self, key: int, now: float) -> bool:
        """Apply one key press. Returns False to quit."""
        engine = self.engine
        if key == ord('q'):
            return False
        if key == ord(' '):
            if engine.session.welding_active:
                engine.pause_welding(now)
            else:
                self.show_results = False
                engine.begin_welding(now)
        elif key == ord('s'):
            self.show_results = False
            engine.start(now)
        elif key == ord('e'):
            results = engine.stop(now)
            if results is not None:
                self.show_results = True
                if results is not self.shown_results:
                    print("\n" + format_report(results) + "\n")
                    self.shown_results = results
        elif key == ord('c'):
            engine.calibrate(now)
        elif key == ord('p'):
            kinds = list(ProcessKind)
            current = kinds.index(engine.settings.process_kind)
            engine.set_process_kind(kinds[(current + 1) % len(kinds)])
        elif key == ord('m'):
            print(f"Sound {'ON' if engine.settings.toggle_sound() else 'OFF'}")
        elif key == ord('v'):
            print(f"Vibration {'ON' if engine.settings.toggle_vibration() else 'OFF'}")
        return True

    def run(self, capture: FrameCapture, tilt_readings: Optional[Iterator[float]] = None) -> Optional[Results]:
        """Interactive loop at a fixed rate until Q or the source ends."""
        period_s = 1.0 / self.fps
        fps_start = time.time()
        frame_count = 0
        fps = 0.0

        print("Press SPACE to weld, E to end, Q to quit\n")
        while capture.is_opened():
            tick_start = time.monotonic()

            if tilt_readings is not None:
                reading = next(tilt_readings, None)
                if reading is None:
                    break
                capture.set_tilt(reading)

            frame_input = capture.read_input()
            if frame_input is None:
                break

            tick = self.engine.tick(frame_input)
            self._on_timer(frame_input.timestamp_ms)

            cv2.imshow(config.WINDOW_NAME, self.render(frame_input.pixels, tick, fps))

            frame_count += 1
            if frame_count % 30 == 0:
                fps = 30 / (time.time() - fps_start)
                fps_start = time.time()

            key = cv2.waitKey(1) & 0xFF
            if key != 0xFF and not self.handle_key(key, now_ms()):
                break

            remaining = period_s - (time.monotonic() - tick_start)
            if remaining > 0:
                time.sleep(remaining)

        capture.release()
        cv2.destroyAllWindows()
        return self.engine.stop(now_ms())

    def run_headless(
        self,
        capture: FrameCapture,
        duration_s: float,
        tilt_readings: Optional[Iterator[float]] = None,
        start_ms: float = 0.0
    ) -> Optional[Results]:
        """
        Weld continuously for `duration_s` of simulated time and stop.

        Timestamps advance by exactly one tick period, so runs do not depend
        on wall-clock speed.
        """
        period_ms = 1000.0 / self.fps
        total_ticks = int(duration_s * self.fps)

        self.engine.begin_welding(start_ms)
        now = start_ms
        for _ in range(total_ticks):
            if tilt_readings is not None:
                reading = next(tilt_readings, None)
                if reading is None:
                    break
                capture.set_tilt(reading)

            frame_input = capture.read_input(timestamp_ms=now)
            if frame_input is None:
                break
            self.engine.tick(frame_input)
            self._on_timer(now)
            now += period_ms

        return self.engine.stop(now)


def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description='Weld Coach AR - Welding Technique Trainer',
        formatter_class=argparse.ArgumentDefaultsHelpFormatter
    )

    # Input source
    input_group = parser.add_mutually_exclusive_group()
    input_group.add_argument('--video', type=str, help='Path to video file')
    input_group.add_argument('--image', type=str, help='Path to image file (repeated each tick)')
    input_group.add_argument('--simulate', action='store_true', help='Synthetic torch motion')
    input_group.add_argument('--tilt-log', type=str, help='Replay tilt readings from a file')

    parser.add_argument('--camera', type=int, default=config.CAMERA_ID,
                        help='Camera ID for webcam mode')
    parser.add_argument('--fps', type=int, default=None,
                        help=f'Tick rate (default: video frame rate or {config.TARGET_FPS})')

    # Session settings
    parser.add_argument('--settings', type=str, help='Settings YAML')
    parser.add_argument('--profiles', type=str, default=config.PROFILES_PATH,
                        help='Process profiles YAML')
    parser.add_argument('--process', type=str, choices=['mig', 'tig', 'stick', 'A', 'B', 'C'],
                        help='Welding process')
    parser.add_argument('--material', type=str, help='Material (display only)')
    parser.add_argument('--no-sound', action='store_true', help='Disable sound cues')
    parser.add_argument('--no-vibration', action='store_true', help='Disable haptic cues')

    # Headless runs
    parser.add_argument('--headless', action='store_true', help='No window; weld for --duration')
    parser.add_argument('--duration', type=float, default=20.0, help='Headless duration (s)')
    parser.add_argument('--seed', type=int, default=None, help='Seed for --simulate')
    parser.add_argument('--report', type=str, help='Save results (.json or text)')
    parser.add_argument('--log-level', type=str, default='INFO',
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'])

    return parser.parse_args(argv)


def build_capture(args) -> FrameCapture:
    if args.video:
        return VideoCapture(args.video)
    if args.image:
        return ImageCapture(args.image, repeat=10 ** 9)
    if args.simulate or args.tilt_log:
        return NullCapture()
    return WebcamCapture(
        camera_id=args.camera,
        width=config.CAMERA_WIDTH,
        height=config.CAMERA_HEIGHT
    )


def tick_rate(args, capture: FrameCapture) -> int:
    """--fps if given, else the frame rate of a video file, else TARGET_FPS."""
    if args.fps:
        return args.fps
    video_fps = getattr(capture, 'fps', 0) or 0
    if video_fps > 0:
        return int(round(video_fps))
    return config.TARGET_FPS


def main(argv=None):
    """Main entry point."""
    args = parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%H:%M:%S"
    )

    settings = load_settings(
        args.settings,
        process_kind=args.process,
        material=args.material,
        sound_enabled=False if args.no_sound else None,
        vibration_enabled=False if args.no_vibration else None,
    )

    if args.simulate:
        mode = "simulated"
    elif args.tilt_log:
        mode = "tilt"
    else:
        mode = "vision"

    print("Initializing Weld Coach AR...")
    profiles = load_profiles(args.profiles)
    pose_source = build_pose_source(
        mode,
        frame_size=(config.CAMERA_WIDTH, config.CAMERA_HEIGHT),
        seed=args.seed,
        profile=profiles[settings.process_kind]
    )
    engine = WeldingEngine.from_config(
        pose_source,
        settings=settings,
        profiles_path=args.profiles,
        audio_sink=LoggingFeedbackSink("audio") if args.headless else TerminalBellSink(),
        haptic_sink=LoggingFeedbackSink("haptic"),
    )
    print(f"  Process: {engine.profile.display_name} | Material: {settings.material} | Source: {mode}")

    capture = build_capture(args)
    tilt_readings = iter(read_tilt_log(args.tilt_log)) if args.tilt_log else None
    app = WeldCoachApp(engine, fps=tick_rate(args, capture))

    if args.headless:
        results = app.run_headless(capture, args.duration, tilt_readings)
        capture.release()
    else:
        results = app.run(capture, tilt_readings)

    if results is not None:
        if results is not app.shown_results:
            print("\n" + format_report(results))
        if args.report:
            path = save_report(results, args.report)
            print(f"\nSaved report to: {path}")


if __name__ == '__main__':
    main()
