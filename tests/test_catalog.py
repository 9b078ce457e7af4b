"""
Tests for the stage catalog and configuration loading.
"""

import json
from dataclasses import FrozenInstanceError

import pytest

from catalog import (
    DEFAULT_BUILD_STAGES,
    CatalogError,
    load_catalog,
    total_duration,
    validate_catalog,
)
from config import load_settings
from model import StageTemplate


def _write(tmp_path, payload, name="stages.json"):
    path = tmp_path / name
    path.write_text(payload if isinstance(payload, str) else json.dumps(payload))
    return path


class TestDefaultCatalog:
    def test_default_catalog_is_valid(self):
        assert validate_catalog(DEFAULT_BUILD_STAGES) == DEFAULT_BUILD_STAGES

    def test_templates_are_immutable(self):
        with pytest.raises(FrozenInstanceError):
            DEFAULT_BUILD_STAGES[0].duration = 99

    def test_total_duration(self):
        assert total_duration() == 90


class TestLoadCatalog:
    def test_none_returns_builtin(self):
        assert load_catalog(None) is DEFAULT_BUILD_STAGES

    def test_loads_json_in_order(self, tmp_path):
        path = _write(tmp_path, [
            {"name": "Groundworks", "duration": 4},
            {"name": " Frame ", "duration": 6},
        ])
        catalog = load_catalog(path)
        assert catalog == (
            StageTemplate(name="Groundworks", duration=4),
            StageTemplate(name="Frame", duration=6),
        )

    @pytest.mark.parametrize(
        "payload",
        [
            [],
            [{"name": "Frame", "duration": 0}],
            [{"name": "Frame", "duration": -2}],
            [{"name": "   ", "duration": 2}],
            [{"name": "Frame"}],
            [{"name": "Frame", "duration": 2}, {"name": "Frame", "duration": 3}],
            {"name": "Frame", "duration": 2},
        ],
    )
    def test_rejects_malformed_catalogs(self, tmp_path, payload):
        with pytest.raises(CatalogError):
            load_catalog(_write(tmp_path, payload))

    def test_rejects_invalid_json(self, tmp_path):
        with pytest.raises(CatalogError):
            load_catalog(_write(tmp_path, "[{not json"))

    def test_rejects_missing_file(self, tmp_path):
        with pytest.raises(CatalogError):
            load_catalog(tmp_path / "absent.json")

    def test_catalog_error_is_a_value_error(self):
        with pytest.raises(ValueError):
            validate_catalog([])


class TestSettings:
    def test_defaults(self):
        settings = load_settings({})
        assert settings.stage_catalog_path is None
        assert settings.log_level == "INFO"
        assert settings.host == "127.0.0.1"
        assert settings.port == 8000
        assert settings.reload is False
        assert settings.stage_catalog() == DEFAULT_BUILD_STAGES

    def test_values_from_environment(self, tmp_path):
        path = _write(tmp_path, [{"name": "Frame", "duration": 2}])
        settings = load_settings({
            "PLOTS_STAGE_CATALOG": str(path),
            "PLOTS_LOG_LEVEL": "debug",
            "PLOTS_HOST": "0.0.0.0",
            "PLOTS_PORT": "9000",
            "PLOTS_RELOAD": "TRUE",
        })
        assert settings.log_level == "DEBUG"
        assert settings.host == "0.0.0.0"
        assert settings.port == 9000
        assert settings.reload is True
        assert settings.stage_catalog() == (StageTemplate(name="Frame", duration=2),)

    def test_bad_port(self):
        with pytest.raises(ValueError):
            load_settings({"PLOTS_PORT": "eighty"})
