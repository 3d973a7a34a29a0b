#!/usr/bin/env python3
"""
Tests for configuration management
"""

import json
import logging
import sys
import tempfile
from pathlib import Path
from unittest.mock import Mock, patch

import pytest
import yaml

# Add train_prep to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from train_prep.config import (
    ConfigTemplateManager,
    ConfigValidator,
    PrepConfig,
    StoreConfig,
    ValidationResult,
)
from train_prep.utils import Timer, format_size, format_time, setup_logging


class TestConfiguration:
    """Test configuration creation and serialization"""

    def test_defaults(self):
        config = PrepConfig()
        assert config.store.backend == "cbfs"
        assert config.store.reference_prefix == "cbfs://"
        assert config.labels.policy == "sequential"
        assert config.labels.verify_vocabulary is True
        assert config.persistence.max_save_attempts == 3
        assert config.work.keep_raw_archives is True

    def test_from_dict(self):
        config = PrepConfig.from_dict({
            "store": {"backend": "local", "local_root": "/data/store"},
            "labels": {"policy": "stable"},
            "log_level": "DEBUG",
            "tags": ["mnist"],
        })
        assert config.store.backend == "local"
        assert config.store.local_root == "/data/store"
        assert config.store.timeout == 30.0
        assert config.labels.policy == "stable"
        assert config.labels.verify_vocabulary is True
        assert config.log_level == "DEBUG"
        assert config.tags == ["mnist"]

    def test_unknown_key_rejected(self):
        with pytest.raises(TypeError):
            PrepConfig.from_dict({"store": {"bucket": "x"}})

    def test_yaml_round_trip(self):
        config = PrepConfig.from_dict({
            "store": {"backend": "local", "local_root": "/data/store"},
            "work": {"work_directory": "/data/work"},
        })
        with tempfile.TemporaryDirectory() as temp_dir:
            path = Path(temp_dir) / "prep.yaml"
            config.save_yaml(path)

            with open(path) as f:
                assert yaml.safe_load(f)["store"]["backend"] == "local"
            assert PrepConfig.from_yaml(path).to_dict() == config.to_dict()

    def test_json_round_trip(self):
        config = PrepConfig.from_dict({"persistence": {"max_save_attempts": 7}})
        with tempfile.TemporaryDirectory() as temp_dir:
            path = Path(temp_dir) / "prep.json"
            config.save_json(path)

            with open(path) as f:
                assert json.load(f)["persistence"]["max_save_attempts"] == 7
            assert PrepConfig.from_file(path).persistence.max_save_attempts == 7

    def test_relative_paths_resolved_against_file(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            path = Path(temp_dir) / "prep.yaml"
            path.write_text(
                "store:\n  backend: local\n  local_root: store\n"
                "work:\n  work_directory: work\n"
            )
            config = PrepConfig.from_yaml(path)

            base = Path(temp_dir).resolve()
            assert config.store.local_root == str(base / "store")
            assert config.work.work_directory == str(base / "work")
            # URLs are not paths
            assert config.store.blob_store_url == "http://localhost:8484"

    def test_empty_yaml(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            path = Path(temp_dir) / "empty.yaml"
            path.write_text("")
            assert PrepConfig.from_yaml(path).to_dict() == PrepConfig().to_dict()

    def test_local_paths_resolved_from_dict(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            base = Path(temp_dir)
            with patch.dict("os.environ", {"PREP_ROOT": str(base / "env")}):
                config = PrepConfig.from_dict(
                    {
                        "store": {"local_root": "$PREP_ROOT/store", "db_url": "http://x"},
                        "work": {"work_directory": "/abs/work"},
                        "log_file": "logs/prep.log",
                    },
                    base_dir=base,
                )

            assert config.store.local_root == str((base / "env" / "store").resolve())
            assert config.store.db_url == "http://x"
            assert config.work.work_directory == str(Path("/abs/work").resolve())
            assert config.log_file == str((base / "logs" / "prep.log").resolve())

    def test_from_dict_leaves_input_untouched(self):
        data = {"store": {"local_root": "store"}}
        PrepConfig.from_dict(data, base_dir=Path("/base"))
        assert data == {"store": {"local_root": "store"}}

    def test_home_directory_expanded(self):
        config = PrepConfig.from_dict({"work": {"work_directory": "~/work"}}, base_dir=Path("/base"))
        assert config.work.work_directory == str((Path.home() / "work").resolve())

    def test_choice_values_normalized(self):
        config = PrepConfig.from_dict({"store": {"backend": "Local"}, "labels": {"policy": "Stable"}})
        assert config.store.backend == "local"
        assert config.labels.policy == "stable"


class TestConfigValidation:
    """Test configuration validation"""

    def _config(self, temp_dir, **sections):
        data = {"work": {"work_directory": str(Path(temp_dir) / "work")}}
        data.update(sections)
        return PrepConfig.from_dict(data)

    def test_valid_config(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            result = ConfigValidator.validate(self._config(temp_dir))
            assert result.is_valid
            assert result.errors == []
            # work directory is created
            assert (Path(temp_dir) / "work").is_dir()

    def test_unknown_backend(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            result = ConfigValidator.validate(self._config(temp_dir, store={"backend": "s3"}))
            assert not result.is_valid
            assert any("backend" in error for error in result.errors)

    def test_bad_urls(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            result = ConfigValidator.validate(
                self._config(temp_dir, store={"blob_store_url": "cbfs:8484", "db_url": "ftp://db"})
            )
            assert len(result.errors) == 2

    def test_bad_values(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            result = ConfigValidator.validate(self._config(
                temp_dir,
                store={"timeout": 0, "reference_prefix": ""},
                labels={"policy": "random"},
                persistence={"max_save_attempts": 0},
            ))
            assert len(result.errors) == 4

    def test_warnings(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            result = ConfigValidator.validate(self._config(
                temp_dir,
                store={"reference_prefix": "cbfs:"},
                labels={"policy": "stable"},
                log_level="LOUD",
            ))
            assert result.is_valid
            assert len(result.warnings) == 3

    def test_mixed_case_policy_accepted(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            result = ConfigValidator.validate(
                self._config(temp_dir, store={"backend": "LOCAL"}, labels={"policy": "Stable"})
            )
            assert result.is_valid

    def test_work_directory_not_creatable(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            blocker = Path(temp_dir) / "blocker"
            blocker.write_text("a file, not a directory")
            config = PrepConfig.from_dict({"work": {"work_directory": str(blocker / "work")}})

            result = ConfigValidator.validate(config)

            assert not result.is_valid
            assert any("Cannot create work directory" in error for error in result.errors)

    def test_log_results(self):
        logger = Mock()
        ValidationResult(errors=["bad backend"], warnings=["odd prefix"]).log_results(logger)

        logger.error.assert_called_once_with("❌ bad backend")
        logger.warning.assert_called_once_with("⚠️ odd prefix")
        logger.info.assert_not_called()


class TestConfigTemplates:
    """Test configuration templates"""

    def test_list_templates(self):
        assert ConfigTemplateManager.list_templates() == ["cbfs", "local"]

    def test_templates_load(self):
        for name in ConfigTemplateManager.list_templates():
            config = ConfigTemplateManager.create_config_from_template(name)
            assert config.store.backend == name

    def test_template_is_a_copy(self):
        template = ConfigTemplateManager.get_template("cbfs")
        template["store"]["backend"] = "changed"
        assert ConfigTemplateManager.get_template("cbfs")["store"]["backend"] == "cbfs"

    def test_overrides(self):
        config = ConfigTemplateManager.create_config_from_template(
            "local", labels={"policy": "stable"}, log_level="WARNING"
        )
        assert config.labels.policy == "stable"
        assert config.labels.verify_vocabulary is True
        assert config.log_level == "WARNING"

    def test_unknown_template(self):
        with pytest.raises(ValueError):
            ConfigTemplateManager.get_template("nope")

    def test_save_template(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            path = Path(temp_dir) / "local.yaml"
            ConfigTemplateManager.save_template("local", path)
            config = PrepConfig.from_yaml(path)
            assert config.store.local_root == str(Path(temp_dir).resolve() / "store")

    def test_save_template_bad_format(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            with pytest.raises(ValueError):
                ConfigTemplateManager.save_template("local", Path(temp_dir) / "x.toml", "toml")


class TestUtilities:
    """Test logging and helper utilities"""

    def test_logging_setup(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            log_file = Path(temp_dir) / "prep.log"
            logger = setup_logging("DEBUG", str(log_file))

            assert logger.name == "train_prep"
            assert logger.level == logging.DEBUG
            assert len(logger.handlers) == 2

            logging.getLogger("train_prep.core.archive").info("hello")
            for handler in logger.handlers:
                handler.flush()
            assert "train_prep.core.archive - INFO - hello" in log_file.read_text()

            for handler in logger.handlers:
                handler.close()
            logger.handlers = []

    def test_format_helpers(self):
        assert format_size(512) == "512B"
        assert format_size(2048) == "2.0KB"
        assert format_size(3 * 1024 * 1024) == "3.0MB"
        assert format_time(0.25) == "250ms"
        assert format_time(5) == "5.0s"
        assert format_time(90) == "1.5m"
        assert format_time(7200) == "2.0h"

    def test_timer(self):
        timer = Timer()
        assert timer.elapsed == 0.0
        with patch("train_prep.utils.time.perf_counter", side_effect=[10.0, 12.5]):
            with timer:
                pass
        assert timer.elapsed == 2.5
        assert str(timer) == "2.5s"

    def test_store_config_fields(self):
        assert StoreConfig(backend="local").backend == "local"
