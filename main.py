"""Simple batch runner for local validation."""

from __future__ import annotations

import logging
from pathlib import Path

from configs.loader import ConfigLoader, RunSettings
from core.deterministic_rng import DeterministicRNG
from core.sim_state import ProcessRole, SimulationState, Tally
from core.simulator import Simulator
from transport.base import Transport
from transport.dummy import DummyTransport


def build_state(settings: RunSettings) -> SimulationState:
    """Allocate a fresh simulation state from run settings."""
    return SimulationState(
        config=settings.run_config(),
        rng=DeterministicRNG(settings.seed),
        entropy_on=settings.entropy,
        tallies=[Tally(t.filter_bins, t.score_bins, name=t.name) for t in settings.tallies],
    )


def build_simulator(
    settings: RunSettings,
    transport: Transport | None = None,
    role: ProcessRole = ProcessRole.MASTER,
    output_dir: str | Path | None = None,
) -> Simulator:
    """Build a simulator from run settings."""
    return Simulator(
        state=build_state(settings),
        transport=transport or DummyTransport(),
        state_point_batches=settings.state_point_batches,
        output_dir=output_dir if output_dir is not None else settings.state_point_directory,
        role=role,
    )


def main(config_path: str = "configs/example_settings.yaml", state_point: str | None = None) -> None:
    """Load settings, optionally restart from a state point, and run."""
    logging.basicConfig(level=logging.INFO)
    settings = ConfigLoader.load(config_path)
    simulator = build_simulator(settings)
    if state_point is not None:
        simulator.restart(state_point)
    simulator.run()


if __name__ == "__main__":
    main()
