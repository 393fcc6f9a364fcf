"""
Unit tests for configuration management.
"""

import os
import shutil
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from sangermerge import config
from sangermerge.errors import ConfigurationError


class TestDefaults(unittest.TestCase):
    """Test default configuration values."""

    def test_defaults(self):
        cfg = config.get_default_config()
        self.assertEqual(cfg.consensus.min_information, 1.0)
        self.assertEqual(cfg.consensus.min_reads, 0)
        self.assertEqual(cfg.consensus.no_consensus_char, "-")
        self.assertEqual(cfg.alignment.mafft_algorithm, "auto")
        self.assertEqual(cfg.quality.linkage_method, "average")
        self.assertEqual(cfg.genetic_code_table, 1)
        self.assertIsNone(cfg.processors)

    def test_frozen(self):
        cfg = config.get_default_config()
        with self.assertRaises(Exception):
            cfg.processors = 4


class TestValidation(unittest.TestCase):
    """Test validation at construction time."""

    def test_consensus_validation(self):
        with self.assertRaises(ConfigurationError):
            config.ConsensusConfig(min_information=1.1)
        with self.assertRaises(ConfigurationError):
            config.ConsensusConfig(min_reads=-1)
        with self.assertRaises(ConfigurationError):
            config.ConsensusConfig(no_consensus_char="--")

    def test_alignment_validation(self):
        with self.assertRaises(ConfigurationError):
            config.AlignmentConfig(mafft_algorithm="fastest")
        cfg = config.AlignmentConfig(extra_options=["--ep", "0"])
        self.assertEqual(cfg.extra_options, ("--ep", "0"))

    def test_frameshift_validation(self):
        with self.assertRaises(ConfigurationError):
            config.FrameshiftConfig(frameshift_penalty=5)
        with self.assertRaises(ConfigurationError):
            config.FrameshiftConfig(codon_gap_penalty=0)

    def test_quality_validation(self):
        with self.assertRaises(ConfigurationError):
            config.QualityConfig(linkage_method="ward")

    def test_merge_validation(self):
        with self.assertRaises(ConfigurationError):
            config.MergeConfig(processors=0)
        with self.assertRaises(ConfigurationError):
            config.MergeConfig(log_level="LOUD")


class TestUpdate(unittest.TestCase):
    """Test configuration updates."""

    def test_nested_update(self):
        cfg = config.get_default_config().update(
            consensus__min_information=0.0,
            consensus__min_reads=2,
            processors=4,
        )
        self.assertEqual(cfg.consensus.min_information, 0.0)
        self.assertEqual(cfg.consensus.min_reads, 2)
        self.assertEqual(cfg.processors, 4)

    def test_update_returns_new_object(self):
        original = config.get_default_config()
        updated = original.update(consensus__min_reads=3)
        self.assertEqual(original.consensus.min_reads, 0)
        self.assertEqual(updated.consensus.min_reads, 3)

    def test_update_validates(self):
        with self.assertRaises(ConfigurationError):
            config.get_default_config().update(consensus__min_information=2.0)


class TestFileIO(unittest.TestCase):
    """Test loading and saving configuration files."""

    def setUp(self):
        self.tmpdir = Path(tempfile.mkdtemp())

    def tearDown(self):
        shutil.rmtree(self.tmpdir)

    def test_yaml_round_trip(self):
        cfg = config.get_default_config().update(
            consensus__min_reads=2,
            alignment__extra_options=("--ep", "0"),
            genetic_code_table=2,
        )
        path = self.tmpdir / "config.yaml"
        cfg.to_yaml(path)
        loaded = config.load_config_from_file(path)
        self.assertEqual(loaded, cfg)

    def test_json_round_trip(self):
        cfg = config.get_default_config().update(quality__linkage_method="complete")
        path = self.tmpdir / "config.json"
        cfg.to_json(path)
        loaded = config.load_config_from_file(path)
        self.assertEqual(loaded, cfg)

    def test_partial_yaml(self):
        path = self.tmpdir / "partial.yml"
        path.write_text("consensus:\n  min_information: 0.5\nprocessors: 2\n")
        loaded = config.load_config_from_file(path)
        self.assertEqual(loaded.consensus.min_information, 0.5)
        self.assertEqual(loaded.consensus.min_reads, 0)
        self.assertEqual(loaded.processors, 2)

    def test_unknown_key(self):
        path = self.tmpdir / "bad.yaml"
        path.write_text("consensus:\n  min_info: 0.5\n")
        with self.assertRaises(ConfigurationError):
            config.load_config_from_file(path)

    def test_unsupported_format(self):
        path = self.tmpdir / "config.toml"
        path.write_text("processors = 2\n")
        with self.assertRaises(ConfigurationError):
            config.load_config_from_file(path)

    def test_missing_file(self):
        with self.assertRaises(FileNotFoundError):
            config.load_config_from_file(self.tmpdir / "missing.yaml")


class TestEnvironment(unittest.TestCase):
    """Test environment variable overrides."""

    def test_env_overrides(self):
        env = {
            "SANGERMERGE_PROCESSORS": "4",
            "SANGERMERGE_CONSENSUS__MIN_INFORMATION": "0.75",
        }
        with patch.dict(os.environ, env):
            overrides = config.load_config_from_env()
        self.assertEqual(overrides["processors"], 4)
        self.assertEqual(overrides["consensus__min_information"], 0.75)

        cfg = config.get_default_config().update(**overrides)
        self.assertEqual(cfg.processors, 4)
        self.assertEqual(cfg.consensus.min_information, 0.75)

    def test_parse_env_value(self):
        self.assertIs(config._parse_env_value("true"), True)
        self.assertIs(config._parse_env_value("No"), False)
        self.assertEqual(config._parse_env_value("3"), 3)
        self.assertEqual(config._parse_env_value("0.5"), 0.5)
        self.assertEqual(config._parse_env_value("globalpair"), "globalpair")


if __name__ == "__main__":
    unittest.main()
