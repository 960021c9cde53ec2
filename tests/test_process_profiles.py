"""Tests for process profiles and runtime settings."""
import sys
import os
import unittest
import tempfile
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from pipeline.process_profiles import (
    Band, CONSUMABLE_WEIGHTS, CONTINUOUS_FEED_WEIGHTS, DEFAULT_PROFILES,
    METRIC_ORDER, ProcessKind, load_profiles,
)
from pipeline.settings import WeldSettings, load_settings


class TestProcessKind(unittest.TestCase):
    """ProcessKind parsing."""

    def test_parse_values_letters_and_aliases(self):
        self.assertIs(ProcessKind.parse("mig"), ProcessKind.MIG)
        self.assertIs(ProcessKind.parse("A"), ProcessKind.MIG)
        self.assertIs(ProcessKind.parse("b"), ProcessKind.TIG)
        self.assertIs(ProcessKind.parse(" C "), ProcessKind.STICK)
        self.assertIs(ProcessKind.parse("smaw"), ProcessKind.STICK)
        self.assertIs(ProcessKind.parse(ProcessKind.TIG), ProcessKind.TIG)

    def test_parse_unknown_raises(self):
        with self.assertRaises(ValueError):
            ProcessKind.parse("laser")


class TestBand(unittest.TestCase):
    """Band helpers."""

    def test_contains_is_inclusive(self):
        band = Band(15, 25)
        self.assertTrue(band.contains(15))
        self.assertTrue(band.contains(25))
        self.assertFalse(band.contains(25.01))

    def test_gap(self):
        band = Band(15, 25)
        self.assertEqual(band.gap(20), 0.0)
        self.assertEqual(band.gap(10), 5)
        self.assertEqual(band.gap(28), 3)

    def test_midpoint_and_width(self):
        band = Band(8, 15)
        self.assertAlmostEqual(band.midpoint, 11.5)
        self.assertAlmostEqual(band.width, 7)

    def test_inverted_band_raises(self):
        with self.assertRaises(ValueError):
            Band(10, 5)


class TestDefaultProfiles(unittest.TestCase):
    """Built-in process bands and weights."""

    def test_bands(self):
        mig = DEFAULT_PROFILES[ProcessKind.MIG]
        self.assertEqual(mig.optimal_angle, Band(15, 25))
        self.assertEqual(mig.optimal_distance, Band(15, 25))
        self.assertEqual(mig.optimal_speed, Band(5, 15))

        tig = DEFAULT_PROFILES[ProcessKind.TIG]
        self.assertEqual(tig.optimal_angle, Band(10, 20))
        self.assertEqual(tig.optimal_distance, Band(8, 15))
        self.assertEqual(tig.optimal_speed, Band(3, 10))

        stick = DEFAULT_PROFILES[ProcessKind.STICK]
        self.assertEqual(stick.optimal_angle, Band(5, 15))
        self.assertEqual(stick.optimal_distance, Band(5, 10))
        self.assertEqual(stick.optimal_speed, Band(0.3, 0.8))
        self.assertTrue(stick.consumable_electrode)
        self.assertFalse(mig.consumable_electrode)

    def test_weights_sum_to_one(self):
        self.assertAlmostEqual(sum(CONSUMABLE_WEIGHTS.values()), 1.0)
        self.assertAlmostEqual(sum(CONTINUOUS_FEED_WEIGHTS.values()), 1.0)
        self.assertEqual(set(CONSUMABLE_WEIGHTS), set(METRIC_ORDER))

    def test_normalized_weights_over_subset(self):
        mig = DEFAULT_PROFILES[ProcessKind.MIG]
        weights = mig.normalized_weights(['angle', 'stability'])
        self.assertAlmostEqual(weights['angle'], 0.25 / 0.45)
        self.assertAlmostEqual(weights['stability'], 0.20 / 0.45)
        self.assertAlmostEqual(sum(weights.values()), 1.0)


class TestLoadProfiles(unittest.TestCase):
    """YAML profile overrides."""

    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.path = Path(self.temp_dir.name) / "profiles.yaml"

    def tearDown(self):
        self.temp_dir.cleanup()

    def test_no_path_returns_defaults(self):
        self.assertEqual(load_profiles(), DEFAULT_PROFILES)

    def test_override_single_field(self):
        self.path.write_text(
            "profiles:\n"
            "  tig:\n"
            "    optimal_angle: {min: 12, max: 18}\n",
            encoding='utf-8'
        )
        profiles = load_profiles(str(self.path))
        tig = profiles[ProcessKind.TIG]
        self.assertEqual(tig.optimal_angle, Band(12, 18))
        self.assertEqual(tig.optimal_distance, Band(8, 15))
        self.assertEqual(profiles[ProcessKind.MIG], DEFAULT_PROFILES[ProcessKind.MIG])

    def test_list_band_and_weights(self):
        self.path.write_text(
            "profiles:\n"
            "  C:\n"
            "    optimal_speed: [0.2, 0.9]\n"
            "    weights: {angle: 1.0}\n",
            encoding='utf-8'
        )
        stick = load_profiles(str(self.path))[ProcessKind.STICK]
        self.assertEqual(stick.optimal_speed, Band(0.2, 0.9))
        self.assertEqual(stick.weights, {'angle': 1.0})

    def test_unknown_weight_key_raises(self):
        self.path.write_text(
            "profiles:\n"
            "  mig:\n"
            "    weights: {smoothness: 0.5}\n",
            encoding='utf-8'
        )
        with self.assertRaises(ValueError):
            load_profiles(str(self.path))

    def test_bundled_profiles_match_defaults(self):
        bundled = Path(__file__).resolve().parent.parent / "data" / "process_profiles.yaml"
        profiles = load_profiles(str(bundled))
        for kind in ProcessKind:
            self.assertEqual(profiles[kind].optimal_angle, DEFAULT_PROFILES[kind].optimal_angle)
            self.assertEqual(profiles[kind].optimal_speed, DEFAULT_PROFILES[kind].optimal_speed)


class TestSettings(unittest.TestCase):
    """WeldSettings and load_settings."""

    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.path = Path(self.temp_dir.name) / "settings.yaml"

    def tearDown(self):
        self.temp_dir.cleanup()

    def test_defaults(self):
        settings = WeldSettings()
        self.assertIs(settings.process_kind, ProcessKind.MIG)
        self.assertTrue(settings.sound_enabled)
        self.assertTrue(settings.vibration_enabled)

    def test_process_kind_parsed(self):
        self.assertIs(WeldSettings(process_kind="C").process_kind, ProcessKind.STICK)

    def test_toggles(self):
        settings = WeldSettings()
        self.assertFalse(settings.toggle_sound())
        self.assertTrue(settings.toggle_sound())
        self.assertFalse(settings.toggle_vibration())

    def test_yaml_and_overrides(self):
        self.path.write_text("process_kind: tig\nmaterial: aluminium\n", encoding='utf-8')
        settings = load_settings(str(self.path), material=None, sound_enabled=False)
        self.assertIs(settings.process_kind, ProcessKind.TIG)
        self.assertEqual(settings.material, "aluminium")
        self.assertFalse(settings.sound_enabled)

    def test_unknown_key_raises(self):
        self.path.write_text("volume: 11\n", encoding='utf-8')
        with self.assertRaises(ValueError):
            load_settings(str(self.path))

    def test_non_mapping_raises(self):
        self.path.write_text("- mig\n- tig\n", encoding='utf-8')
        with self.assertRaises(ValueError):
            load_settings(str(self.path))


if __name__ == '__main__':
    unittest.main()
