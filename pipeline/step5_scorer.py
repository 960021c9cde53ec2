"""
Step 5: Scoring Engine
======================
Aggregates a session's per-tick metric arrays into per-metric scores, a
weighted final score and ranked recommendations.

Tier-based sub-scores (speed, approach, distance) use fixed tier midpoints,
so identical inputs always give identical results. An explicit, seeded noise
model can be switched on with `score_noise` for a less mechanical feel.
"""

import numpy as np
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from .process_profiles import Band, METRIC_ORDER, ProcessKind, ProcessProfile


@dataclass
class SessionMetrics:
    """Per-tick values accumulated while welding is active."""
    angle_scores: List[float] = field(default_factory=list)
    angle_values: List[float] = field(default_factory=list)
    stability_scores: List[float] = field(default_factory=list)
    speed_values: List[float] = field(default_factory=list)
    approach_speed_values: List[float] = field(default_factory=list)
    straightness_values: List[float] = field(default_factory=list)
    distance_values: List[float] = field(default_factory=list)

    def clear(self) -> None:
        for values in vars(self).values():
            values.clear()

    @property
    def sample_count(self) -> int:
        return len(self.angle_scores)


@dataclass(frozen=True)
class MetricResult:
    """Score of one metric. score None = not enough data."""
    score: Optional[float]
    average: Optional[float] = None
    feedback: str = ""

    @property
    def available(self) -> bool:
        return self.score is not None


@dataclass
class Results:
    """Final session evaluation."""
    process_kind: ProcessKind
    has_data: bool
    final_score: int
    metrics: Dict[str, MetricResult]
    recommendations: List[str]
    duration_ms: float = 0.0
    sample_count: int = 0
    angle_optimal_percentage: Optional[float] = None
    skill_level: Optional[str] = None
    process_name: str = ""


# Tier tables: (upper bound factor or threshold, midpoint, spread).
# Spread is only used by the optional noise model.
SPEED_TIERS_CONSUMABLE = [(0.7, 1.3, 75.0, 5.0)]
SPEED_TIERS_CONTINUOUS = [(0.8, 1.2, 80.0, 5.0), (0.6, 1.4, 60.0, 5.0)]
SPEED_IN_BAND = (92.5, 2.5)
SPEED_FLOOR_CONSUMABLE = (50.0, 10.0)
SPEED_FLOOR_CONTINUOUS = (45.0, 10.0)

# (low, high) signed approach speed bands in cm/s, negative = approaching
APPROACH_TIERS_CONSUMABLE = [((-0.5, -0.1), 90.0, 5.0), ((-0.7, -0.05), 70.0, 5.0)]
APPROACH_FLOOR_CONSUMABLE = (47.5, 7.5)
# |approach speed| upper limits
APPROACH_TIERS_CONTINUOUS = [(0.3, 92.5, 2.5), (0.6, 75.0, 5.0), (1.0, 55.0, 5.0)]
APPROACH_FLOOR_CONTINUOUS = (37.5, 7.5)

# Deviation from the band midpoint as a fraction of band width
DISTANCE_TIERS_CONSUMABLE = [(0.3, 90.0, 5.0), (0.6, 70.0, 5.0), (1.0, 50.0, 5.0)]
DISTANCE_FLOOR_CONSUMABLE = (30.0, 5.0)
DISTANCE_TIERS_CONTINUOUS = [(0.2, 92.5, 2.5), (0.4, 80.0, 5.0), (0.6, 60.0, 5.0)]
DISTANCE_FLOOR_CONTINUOUS = (40.0, 5.0)

POSITIVE_MESSAGE = "Excellent technique! Keep practicing."
NO_DATA_MESSAGE = "No welding data was recorded. Hold the weld trigger while moving the torch."

# Corrective tips keyed by (metric, process). Formatted with the profile.
TIPS: Dict[Tuple[str, ProcessKind], str] = {
    ('angle', ProcessKind.MIG): "For MIG/MAG, keep the torch angle between {angle.min:g}° and {angle.max:g}°",
    ('angle', ProcessKind.TIG): "For TIG, the ideal torch angle is {angle.min:g}°-{angle.max:g}°",
    ('angle', ProcessKind.STICK): "Keep the electrode angle between {angle.min:g}° and {angle.max:g}°",
    ('stability', ProcessKind.MIG): "Brace your elbow for a steadier torch angle",
    ('stability', ProcessKind.TIG): "Rest your hand on the work piece to steady the torch",
    ('stability', ProcessKind.STICK): "Brace your elbow for a steadier electrode angle",
    ('speed', ProcessKind.MIG): "MIG: ideal travel speed is {speed.min:g}-{speed.max:g} cm/s",
    ('speed', ProcessKind.TIG): "TIG: ideal travel speed is {speed.min:g}-{speed.max:g} cm/s",
    ('speed', ProcessKind.STICK): "Stick: advance at {speed.min:g}-{speed.max:g} cm/s",
    ('approach', ProcessKind.MIG): "Hold a constant torch distance (variation below 0.3 cm/s)",
    ('approach', ProcessKind.TIG): "Hold a constant torch distance (variation below 0.3 cm/s)",
    ('approach', ProcessKind.STICK): "Feed the electrode in gradually as it burns (-0.1 to -0.5 cm/s)",
    ('straightness', ProcessKind.MIG): "Practice keeping a straight line while welding",
    ('straightness', ProcessKind.TIG): "Practice keeping a straight line while welding",
    ('straightness', ProcessKind.STICK): "Practice keeping a straight line while welding",
    ('distance', ProcessKind.MIG): "MIG: ideal distance is {distance.min:g}-{distance.max:g} cm",
    ('distance', ProcessKind.TIG): "TIG: ideal distance is {distance.min:g}-{distance.max:g} cm",
    ('distance', ProcessKind.STICK): "Stick: keep {distance.min:g}-{distance.max:g} cm from the work piece",
}


def angle_score(angle: float, band: Band, penalty_factor: float = 15.0) -> float:
    """100 inside the band, else max(0, 100 - gap * penalty_factor)."""
    gap = band.gap(angle)
    if gap == 0:
        return 100.0
    return max(0.0, 100.0 - gap * penalty_factor)


def _mean(values: Sequence[float]) -> Optional[float]:
    if not values:
        return None
    return float(np.mean(np.asarray(values, dtype=float)))


def skill_level(final_score: float) -> str:
    if final_score >= 80:
        return "Expert"
    if final_score >= 60:
        return "Intermediate"
    return "Beginner"


def _tiered_feedback(score: float, tiers: Sequence[Tuple[float, str]], fallback: str) -> str:
    for threshold, text in tiers:
        if score >= threshold:
            return text
    return fallback


def metric_feedback(metric: str, score: Optional[float], average: Optional[float],
                    profile: ProcessProfile) -> str:
    """Short feedback phrase for one metric."""
    if score is None:
        return "--"

    name = profile.display_name
    if metric == 'angle':
        return _tiered_feedback(score, [
            (90, f"Perfect angle for {name}"),
            (70, f"Good angle control for {name}"),
            (50, f"Acceptable angle for {name}"),
        ], f"Angle needs work for {name}")

    if metric == 'stability':
        return _tiered_feedback(score, [
            (85, "Very stable, steady hand"),
            (65, "Acceptable stability"),
            (45, "Noticeable wobble"),
        ], "Very unstable, needs training")

    if metric == 'straightness':
        return _tiered_feedback(score, [
            (85, "Very straight line"),
            (65, "Acceptable straightness"),
            (45, "Line is somewhat curved"),
        ], "Practice welding in a straight line")

    avg = "--" if average is None else f"{average:.1f}"
    if metric == 'speed':
        return _tiered_feedback(score, [
            (80, f"Optimal travel speed ({avg} cm/s)"),
            (60, f"Moderate travel speed ({avg} cm/s)"),
        ], f"Inadequate travel speed ({avg} cm/s)")

    if metric == 'approach':
        if profile.consumable_electrode:
            return _tiered_feedback(score, [
                (80, f"Steady electrode feed ({avg} cm/s)"),
                (60, f"Acceptable electrode feed ({avg} cm/s)"),
            ], f"Irregular electrode feed ({avg} cm/s)")
        return _tiered_feedback(score, [
            (80, "Very constant distance"),
            (60, "Acceptable distance control"),
        ], "Too much variation in distance")

    if metric == 'distance':
        return _tiered_feedback(score, [
            (80, f"Optimal distance ({avg} cm)"),
            (60, f"Acceptable distance ({avg} cm)"),
        ], f"Incorrect distance ({avg} cm)")

    return ""


class ScoringEngine:
    """
    Rule-based session scorer.

    Scoring rubric:
    - angle: mean per-tick angle score
    - stability / straightness: mean of the tracker's per-tick scores
    - speed / approach / distance: tiered against the process bands
    - final: process-weighted sum over available metrics (weights renormalized)
    """

    def __init__(
        self,
        penalty_factor: float = 15.0,
        recommendation_threshold: float = 70.0,
        score_noise: float = 0.0,
        seed: Optional[int] = None
    ):
        """
        Initialize scoring engine.

        Args:
            penalty_factor: Angle score lost per degree outside the band
            recommendation_threshold: Metrics below this get a tip
            score_noise: 0 = deterministic tiers, 1 = full tier spread
            seed: Seed for the noise generator
        """
        self.penalty_factor = penalty_factor
        self.recommendation_threshold = recommendation_threshold
        self.score_noise = min(1.0, max(0.0, score_noise))
        self.rng = np.random.default_rng(seed)

    def _tier(self, midpoint: float, spread: float) -> float:
        if self.score_noise <= 0:
            return midpoint
        return midpoint + float(self.rng.uniform(-spread, spread)) * self.score_noise

    def angle_score(self, angle: float, profile: ProcessProfile) -> float:
        return angle_score(angle, profile.optimal_angle, self.penalty_factor)

    def speed_score(self, speed: float, profile: ProcessProfile) -> float:
        band = profile.optimal_speed
        if band.contains(speed):
            return self._tier(*SPEED_IN_BAND)

        if profile.consumable_electrode:
            tiers, floor = SPEED_TIERS_CONSUMABLE, SPEED_FLOOR_CONSUMABLE
        else:
            tiers, floor = SPEED_TIERS_CONTINUOUS, SPEED_FLOOR_CONTINUOUS

        for low_factor, high_factor, midpoint, spread in tiers:
            if band.min * low_factor <= speed <= band.max * high_factor:
                return self._tier(midpoint, spread)
        return self._tier(*floor)

    def approach_score(self, approach_speed: float, profile: ProcessProfile) -> float:
        if profile.consumable_electrode:
            for (low, high), midpoint, spread in APPROACH_TIERS_CONSUMABLE:
                if low <= approach_speed <= high:
                    return self._tier(midpoint, spread)
            return self._tier(*APPROACH_FLOOR_CONSUMABLE)

        magnitude = abs(approach_speed)
        for limit, midpoint, spread in APPROACH_TIERS_CONTINUOUS:
            if magnitude < limit:
                return self._tier(midpoint, spread)
        return self._tier(*APPROACH_FLOOR_CONTINUOUS)

    def distance_score(self, distance_cm: float, profile: ProcessProfile) -> float:
        band = profile.optimal_distance
        diff = abs(distance_cm - band.midpoint)

        if profile.consumable_electrode:
            tiers, floor = DISTANCE_TIERS_CONSUMABLE, DISTANCE_FLOOR_CONSUMABLE
        else:
            tiers, floor = DISTANCE_TIERS_CONTINUOUS, DISTANCE_FLOOR_CONTINUOUS

        for fraction, midpoint, spread in tiers:
            if diff <= band.width * fraction:
                return self._tier(midpoint, spread)
        return self._tier(*floor)

    def live_score(self, metrics: SessionMetrics) -> Optional[float]:
        """Running score shown while welding: half angle, half stability."""
        avg_angle = _mean(metrics.angle_scores)
        if avg_angle is None:
            return None
        avg_stability = _mean(metrics.stability_scores)
        if avg_stability is None:
            return avg_angle
        return avg_angle * 0.5 + avg_stability * 0.5

    def recommendations(self, metric_results: Dict[str, MetricResult],
                        profile: ProcessProfile) -> List[str]:
        """One tip per metric under the threshold, in METRIC_ORDER."""
        tips = []
        for metric in METRIC_ORDER:
            result = metric_results.get(metric)
            if result is None or not result.available:
                continue
            if result.score < self.recommendation_threshold:
                template = TIPS[(metric, profile.kind)]
                tips.append(template.format(
                    angle=profile.optimal_angle,
                    distance=profile.optimal_distance,
                    speed=profile.optimal_speed,
                ))
        if not tips:
            tips.append(POSITIVE_MESSAGE)
        return tips

    def _no_data(self, profile: ProcessProfile, duration_ms: float) -> Results:
        return Results(
            process_kind=profile.kind,
            process_name=profile.display_name,
            has_data=False,
            final_score=0,
            metrics={metric: MetricResult(score=None, feedback="--") for metric in METRIC_ORDER},
            recommendations=[NO_DATA_MESSAGE],
            duration_ms=duration_ms,
        )

    def score(self, metrics: SessionMetrics, profile: ProcessProfile,
              duration_ms: float = 0.0) -> Results:
        """
        Score a finished session.

        Args:
            metrics: Arrays recorded while welding
            profile: Process whose bands and weights apply
            duration_ms: Session duration for the report

        Returns:
            Results (has_data=False when nothing was recorded)
        """
        if metrics.sample_count == 0:
            return self._no_data(profile, duration_ms)

        averages = {
            'angle': _mean(metrics.angle_values),
            'stability': _mean(metrics.stability_scores),
            'speed': _mean(metrics.speed_values),
            'approach': _mean(metrics.approach_speed_values),
            'straightness': _mean(metrics.straightness_values),
            'distance': _mean(metrics.distance_values),
        }

        scores: Dict[str, Optional[float]] = {
            'angle': _mean(metrics.angle_scores),
            'stability': averages['stability'],
            'speed': None,
            'approach': None,
            'straightness': averages['straightness'],
            'distance': None,
        }
        if averages['speed'] is not None:
            scores['speed'] = self.speed_score(averages['speed'], profile)
        if averages['approach'] is not None:
            scores['approach'] = self.approach_score(averages['approach'], profile)
        if averages['distance'] is not None:
            scores['distance'] = self.distance_score(averages['distance'], profile)

        scores = {
            metric: None if value is None else float(min(100.0, max(0.0, value)))
            for metric, value in scores.items()
        }

        metric_results = {
            metric: MetricResult(
                score=scores[metric],
                average=averages[metric],
                feedback=metric_feedback(metric, scores[metric], averages[metric], profile),
            )
            for metric in METRIC_ORDER
        }

        available = [metric for metric in METRIC_ORDER if scores[metric] is not None]
        weights = profile.normalized_weights(available)
        final = sum(weights[metric] * scores[metric] for metric in available)
        final_score = int(round(min(100.0, max(0.0, final))))

        optimal_hits = sum(1 for s in metrics.angle_scores if s >= 100.0)

        return Results(
            process_kind=profile.kind,
            process_name=profile.display_name,
            has_data=True,
            final_score=final_score,
            metrics=metric_results,
            recommendations=self.recommendations(metric_results, profile),
            duration_ms=duration_ms,
            sample_count=metrics.sample_count,
            angle_optimal_percentage=100.0 * optimal_hits / metrics.sample_count,
            skill_level=skill_level(final_score),
        )
