"""Tests for run settings loading and validation."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from configs.loader import ConfigLoader, ConfigValidationError
from core.sim_state import RunMode
from main import build_state


def _payload(**overrides) -> dict:
    payload = {
        "run_mode": "criticality",
        "particles": 500,
        "batches": 6,
        "inactive": 2,
        "seed": 3,
    }
    payload.update(overrides)
    return payload


def test_load_yaml_settings(tmp_path) -> None:
    config_path = tmp_path / "settings.yaml"
    config_path.write_text(
        "run_mode: criticality\n"
        "particles: 1000\n"
        "batches: 10\n"
        "inactive: 3\n"
        "seed: 17\n"
        "entropy: true\n"
        "state_point:\n"
        "  batches: [8, 4, 4]\n"
        "  directory: out\n"
        "tallies:\n"
        "  - {filter_bins: 4, score_bins: 2}\n"
        "  - {name: heating, filter_bins: 1, score_bins: 1}\n"
        "note: demo\n",
        encoding="utf-8",
    )

    settings = ConfigLoader.load(config_path)

    assert settings.run_mode is RunMode.CRITICALITY
    assert settings.inactive == 3
    assert settings.entropy is True
    assert settings.state_point_batches == (4, 8)
    assert settings.state_point_directory == "out"
    assert [t.name for t in settings.tallies] == ["tally_1", "heating"]
    assert settings.extras == {"note": "demo"}

    state = build_state(settings)
    assert state.seed == 17
    assert state.k_batch.size == 10
    assert [tally.shape for tally in state.tallies] == [(4, 2), (1, 1)]


def test_load_json_fixed_source(tmp_path) -> None:
    config_path = tmp_path / "settings.json"
    config_path.write_text(json.dumps(_payload(run_mode="fixed_source", inactive=0)), encoding="utf-8")

    settings = ConfigLoader.load(config_path)

    assert settings.run_mode is RunMode.FIXED_SOURCE
    assert settings.run_config().n_inactive == 0
    assert settings.generations_per_batch == 1


def test_example_settings_file_loads() -> None:
    path = Path(__file__).resolve().parents[1] / "configs" / "example_settings.yaml"

    settings = ConfigLoader.load(path)

    assert settings.batches == 10
    assert settings.state_point_batches == (5, 10)


def test_invalid_settings_missing_required_key(tmp_path) -> None:
    payload = _payload()
    del payload["seed"]
    config_path = tmp_path / "invalid.json"
    config_path.write_text(json.dumps(payload), encoding="utf-8")

    with pytest.raises(ConfigValidationError, match="Missing required settings keys: seed"):
        ConfigLoader.load(config_path)


@pytest.mark.parametrize(
    ("overrides", "message"),
    [
        ({"run_mode": "eigenmode"}, "Unknown run_mode"),
        ({"particles": 0}, "'particles' must be > 0"),
        ({"inactive": 6}, "smaller than 'batches'"),
        ({"seed": "abc"}, "'seed' must be an integer"),
        ({"seed": 2**63}, r"'seed' must lie in \[-9223372036854775808, 9223372036854775807\]"),
        ({"seed": -(2**63) - 1}, r"'seed' must lie in"),
        ({"particles": 2**63}, "'particles' must be <= 9223372036854775807"),
        ({"batches": 2**31}, "'batches' must be <= 2147483647"),
        ({"state_point": {"batches": [7]}}, r"lie in \[1, batches\]"),
        ({"tallies": [{"filter_bins": 2}]}, "'score_bins' must be an integer"),
    ],
)
def test_invalid_settings_values(tmp_path, overrides: dict, message: str) -> None:
    config_path = tmp_path / "invalid.json"
    config_path.write_text(json.dumps(_payload(**overrides)), encoding="utf-8")

    with pytest.raises(ConfigValidationError, match=message):
        ConfigLoader.load(config_path)


def test_unsupported_extension(tmp_path) -> None:
    config_path = tmp_path / "settings.toml"
    config_path.write_text("seed = 1\n", encoding="utf-8")

    with pytest.raises(ConfigValidationError, match="Unsupported settings extension"):
        ConfigLoader.load(config_path)
