"""Command-line entry points for running, restarting, and inspecting runs."""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
import sys

# Allow `python cli/main.py ...` execution from IDEs by adding repo root to sys.path.
if __package__ in {None, ""}:
    repo_root = Path(__file__).resolve().parents[1]
    if str(repo_root) not in sys.path:
        sys.path.insert(0, str(repo_root))

from configs.loader import ConfigLoader, ConfigValidationError
from core.sim_state import ProcessRole, SimulationState
from data.state_point_codec import StatePointError, codec_for_role
from main import build_simulator

LOGGER = logging.getLogger(__name__)


def _inspect(path: Path, entropy: bool) -> list[str]:
    state = SimulationState(entropy_on=entropy)
    with path.open("rb") as stream:
        point = codec_for_role(ProcessRole.WORKER).read(stream, state)

    config = point.config
    lines = [
        f"revision: {point.header.revision}",
        f"version: {point.header.version_string}",
        f"seed: {point.seed}",
        f"run_mode: {config.run_mode.name.lower()}",
        f"particles: {config.n_particles}",
        f"batches: {config.n_batches}",
        f"inactive: {config.n_inactive}",
        f"generations_per_batch: {config.gen_per_batch}",
        f"batch: {point.restart_batch}",
    ]
    if point.k_batch is not None and point.k_batch.size:
        lines.append("k_batch: " + " ".join(f"{k:.5f}" for k in point.k_batch))
    return lines


def run_cli(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="statepoint")
    sub = parser.add_subparsers(dest="command", required=True)

    run_cmd = sub.add_parser("run")
    run_cmd.add_argument("--config", default="configs/example_settings.yaml")
    run_cmd.add_argument("--out", default=None)

    restart_cmd = sub.add_parser("restart")
    restart_cmd.add_argument("--config", default="configs/example_settings.yaml")
    restart_cmd.add_argument("--state-point", required=True)
    restart_cmd.add_argument("--out", default=None)
    restart_cmd.add_argument("--role", choices=[role.value for role in ProcessRole], default="master")

    inspect_cmd = sub.add_parser("inspect")
    inspect_cmd.add_argument("path")
    inspect_cmd.add_argument("--entropy", action="store_true")

    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO)

    try:
        if args.command == "run":
            settings = ConfigLoader.load(args.config)
            simulator = build_simulator(settings, output_dir=args.out)
            simulator.run()
            for path in simulator.written:
                print(path)
            return 0

        if args.command == "restart":
            settings = ConfigLoader.load(args.config)
            simulator = build_simulator(settings, role=ProcessRole(args.role), output_dir=args.out)
            simulator.restart(args.state_point)
            keff = simulator.run()
            print(f"{keff.mean:.5f} {keff.std:.5f}")
            return 0

        if args.command == "inspect":
            for line in _inspect(Path(args.path), args.entropy):
                print(line)
            return 0
    except (StatePointError, ConfigValidationError) as exc:
        LOGGER.error("%s", exc)
        return 1

    return 1


if __name__ == "__main__":
    raise SystemExit(run_cli())
