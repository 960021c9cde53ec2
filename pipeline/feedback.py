"""
Feedback
Discrete audio/haptic cues with per-event cooldowns.

Playback is best effort: a failing sink is logged and ignored, it never
interrupts the tick that triggered it.
"""

import logging
import sys
from abc import ABC, abstractmethod
from enum import Enum
from typing import Dict, Optional

from .process_profiles import Band
from .settings import WeldSettings

logger = logging.getLogger(__name__)


class FeedbackEvent(Enum):
    """Cues the engine can emit."""
    ANGLE_LOW = "angle_low"
    ANGLE_HIGH = "angle_high"
    ANGLE_OPTIMAL = "angle_optimal"
    CALIBRATION_CONFIRMED = "calibration_confirmed"
    WELD_STARTED = "weld_started"
    WELD_PAUSED = "weld_paused"
    WELD_PULSE = "weld_pulse"


HAPTIC_ONLY_EVENTS = (FeedbackEvent.WELD_PULSE,)


def angle_event(angle: float, band: Band) -> FeedbackEvent:
    if angle < band.min:
        return FeedbackEvent.ANGLE_LOW
    if angle > band.max:
        return FeedbackEvent.ANGLE_HIGH
    return FeedbackEvent.ANGLE_OPTIMAL


class FeedbackSink(ABC):
    """Plays a cue on some device."""

    @abstractmethod
    def emit(self, event: FeedbackEvent) -> None:
        pass


class LoggingFeedbackSink(FeedbackSink):
    """Writes cues to the log (headless runs)."""

    def __init__(self, channel: str = "audio"):
        self.channel = channel

    def emit(self, event: FeedbackEvent) -> None:
        logger.info("[%s] %s", self.channel, event.value)


class TerminalBellSink(FeedbackSink):
    """Rings the terminal bell for out-of-band angle cues."""

    BELL_EVENTS = (FeedbackEvent.ANGLE_LOW, FeedbackEvent.ANGLE_HIGH,
                   FeedbackEvent.CALIBRATION_CONFIRMED)

    def __init__(self, stream=None):
        self.stream = stream or sys.stdout

    def emit(self, event: FeedbackEvent) -> None:
        if event in self.BELL_EVENTS:
            self.stream.write('\a')
            self.stream.flush()


class FeedbackDispatcher:
    """
    Routes events to the audio and haptic sinks.

    Each event type has its own cooldown; an event arriving inside its
    cooldown window is dropped. Sound/vibration toggles are read from the
    settings on every call so changes apply immediately.
    Haptic-only events never reach the audio sink.
    """

    def __init__(
        self,
        audio_sink: Optional[FeedbackSink] = None,
        haptic_sink: Optional[FeedbackSink] = None,
        angle_cooldown_ms: float = 500,
        calibration_cooldown_ms: float = 800,
        weld_cooldown_ms: float = 300,
        pulse_interval_ms: float = 2000
    ):
        self.audio_sink = audio_sink
        self.haptic_sink = haptic_sink
        self.cooldowns_ms: Dict[FeedbackEvent, float] = {
            FeedbackEvent.ANGLE_LOW: angle_cooldown_ms,
            FeedbackEvent.ANGLE_HIGH: angle_cooldown_ms,
            FeedbackEvent.ANGLE_OPTIMAL: angle_cooldown_ms,
            FeedbackEvent.CALIBRATION_CONFIRMED: calibration_cooldown_ms,
            FeedbackEvent.WELD_STARTED: weld_cooldown_ms,
            FeedbackEvent.WELD_PAUSED: weld_cooldown_ms,
            FeedbackEvent.WELD_PULSE: pulse_interval_ms,
        }
        self._last_emitted: Dict[FeedbackEvent, float] = {}

    def reset(self) -> None:
        self._last_emitted.clear()

    def hold(self, event: FeedbackEvent, now_ms: float) -> None:
        """Start `event`'s cooldown at now_ms without emitting it."""
        self._last_emitted[event] = now_ms

    def _emit_safely(self, sink: FeedbackSink, event: FeedbackEvent) -> bool:
        try:
            sink.emit(event)
            return True
        except Exception as e:
            logger.warning("Feedback sink %s failed on %s: %s", type(sink).__name__, event.value, e)
            return False

    def dispatch(self, event: FeedbackEvent, now_ms: float, settings: WeldSettings) -> bool:
        """
        Emit `event` unless it is cooling down or every channel is disabled.

        Returns:
            True if the event was handed to at least one sink
        """
        last = self._last_emitted.get(event)
        if last is not None and now_ms - last < self.cooldowns_ms.get(event, 0):
            return False

        targets = []
        if (settings.sound_enabled and self.audio_sink is not None
                and event not in HAPTIC_ONLY_EVENTS):
            targets.append(self.audio_sink)
        if settings.vibration_enabled and self.haptic_sink is not None:
            targets.append(self.haptic_sink)
        if not targets:
            return False

        self._last_emitted[event] = now_ms
        delivered = False
        for sink in targets:
            delivered = self._emit_safely(sink, event) or delivered
        return delivered
