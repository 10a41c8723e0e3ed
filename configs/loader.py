"""Run settings loading and validation (YAML or JSON)."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

import yaml

from core.sim_state import RunConfig, RunMode


class ConfigValidationError(ValueError):
    """Raised when a settings file fails validation."""


_REQUIRED_KEYS: tuple[str, ...] = (
    "run_mode",
    "particles",
    "batches",
    "seed",
)

# Widths of the state point fields these settings end up in.
_INT32_MAX = 2**31 - 1
_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1

_RUN_MODES = {
    "criticality": RunMode.CRITICALITY,
    "eigenvalue": RunMode.CRITICALITY,
    "fixed_source": RunMode.FIXED_SOURCE,
    "fixed-source": RunMode.FIXED_SOURCE,
}


@dataclass(frozen=True)
class TallySettings:
    """Allocated shape of one user tally."""

    filter_bins: int
    score_bins: int
    name: str = ""


@dataclass(frozen=True)
class RunSettings:
    """Validated run settings.

    Provides typed access to the run configuration plus the state point
    schedule and tally layout needed to allocate a ``SimulationState``.
    """

    run_mode: RunMode
    particles: int
    batches: int
    seed: int
    inactive: int = 0
    generations_per_batch: int = 1
    entropy: bool = False
    state_point_batches: tuple[int, ...] = ()
    state_point_directory: str = "."
    tallies: tuple[TallySettings, ...] = ()
    extras: dict[str, Any] = field(default_factory=dict)

    def run_config(self) -> RunConfig:
        return RunConfig(
            run_mode=self.run_mode,
            n_particles=self.particles,
            n_batches=self.batches,
            n_inactive=self.inactive,
            gen_per_batch=self.generations_per_batch,
        )


class ConfigLoader:
    """Load and validate run settings files."""

    @staticmethod
    def load(path: str | Path) -> RunSettings:
        """Load a single settings file from ``path``.

        Args:
            path: Path to a YAML or JSON settings file.

        Returns:
            A validated ``RunSettings`` instance.
        """
        payload = _read_config_payload(path)
        if not isinstance(payload, Mapping):
            raise ConfigValidationError("Settings file must contain a mapping object.")
        return _validate_and_build(payload)


def _read_config_payload(path: str | Path) -> Any:
    config_path = Path(path)
    if not config_path.exists():
        raise ConfigValidationError(f"Settings file not found: {config_path}")

    suffix = config_path.suffix.lower()
    content = config_path.read_text(encoding="utf-8")
    if suffix == ".json":
        return json.loads(content)
    if suffix in {".yaml", ".yml"}:
        try:
            return yaml.safe_load(content)
        except yaml.YAMLError as exc:
            raise ConfigValidationError(f"Failed to parse YAML settings '{config_path}': {exc}") from exc

    raise ConfigValidationError(f"Unsupported settings extension: {suffix}")


def _positive_int(
    payload: Mapping[str, Any],
    key: str,
    default: int | None = None,
    maximum: int = _INT32_MAX,
) -> int:
    value = payload.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigValidationError(f"'{key}' must be an integer, got {value!r}.")
    if value <= 0:
        raise ConfigValidationError(f"'{key}' must be > 0")
    if value > maximum:
        raise ConfigValidationError(f"'{key}' must be <= {maximum}")
    return value


def _parse_state_point(section: Any) -> tuple[tuple[int, ...], str]:
    if section is None:
        return (), "."
    if not isinstance(section, Mapping):
        raise ConfigValidationError("Section 'state_point' must be a mapping.")
    batches = section.get("batches", [])
    if not isinstance(batches, list) or not all(isinstance(b, int) and not isinstance(b, bool) for b in batches):
        raise ConfigValidationError("'state_point.batches' must be a list of integers.")
    return tuple(sorted(set(batches))), str(section.get("directory", "."))


def _parse_tallies(section: Any) -> tuple[TallySettings, ...]:
    if section is None:
        return ()
    if not isinstance(section, list):
        raise ConfigValidationError("Section 'tallies' must be a list of mappings.")
    tallies: list[TallySettings] = []
    for index, item in enumerate(section, start=1):
        if not isinstance(item, Mapping):
            raise ConfigValidationError(f"Tally {index} must be a mapping.")
        tallies.append(
            TallySettings(
                filter_bins=_positive_int(item, "filter_bins"),
                score_bins=_positive_int(item, "score_bins"),
                name=str(item.get("name", f"tally_{index}")),
            )
        )
    return tuple(tallies)


def _validate_and_build(payload: Mapping[str, Any]) -> RunSettings:
    missing = [key for key in _REQUIRED_KEYS if key not in payload]
    if missing:
        raise ConfigValidationError(f"Missing required settings keys: {', '.join(missing)}")

    mode_name = str(payload["run_mode"]).lower()
    if mode_name not in _RUN_MODES:
        raise ConfigValidationError(f"Unknown run_mode '{payload['run_mode']}'.")

    particles = _positive_int(payload, "particles", maximum=_INT64_MAX)
    batches = _positive_int(payload, "batches")
    generations = _positive_int(payload, "generations_per_batch", 1)
    inactive = payload.get("inactive", 0)
    if isinstance(inactive, bool) or not isinstance(inactive, int) or inactive < 0:
        raise ConfigValidationError("'inactive' must be an integer >= 0")
    if inactive >= batches:
        raise ConfigValidationError("'inactive' must be smaller than 'batches'")

    seed = payload["seed"]
    if isinstance(seed, bool) or not isinstance(seed, int):
        raise ConfigValidationError("'seed' must be an integer.")
    if not _INT64_MIN <= seed <= _INT64_MAX:
        raise ConfigValidationError(f"'seed' must lie in [{_INT64_MIN}, {_INT64_MAX}].")

    state_point_batches, directory = _parse_state_point(payload.get("state_point"))
    if any(batch < 1 or batch > batches for batch in state_point_batches):
        raise ConfigValidationError("'state_point.batches' entries must lie in [1, batches].")

    known = set(_REQUIRED_KEYS) | {"inactive", "generations_per_batch", "entropy", "state_point", "tallies"}
    extras = {k: v for k, v in payload.items() if k not in known}

    return RunSettings(
        run_mode=_RUN_MODES[mode_name],
        particles=particles,
        batches=batches,
        seed=seed,
        inactive=inactive,
        generations_per_batch=generations,
        entropy=bool(payload.get("entropy", False)),
        state_point_batches=state_point_batches,
        state_point_directory=directory,
        tallies=_parse_tallies(payload.get("tallies")),
        extras=extras,
    )
