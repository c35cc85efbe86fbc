#!/usr/bin/env python3
"""
Command-line interface for local synthetic likelihood sampling.

Provides commands for:
- Validating run configurations
- Running a configured sampler and saving its trajectory

Usage:
    synthlik validate <config>
    synthlik run <config> -o out/toy_normal
"""

import argparse
import json
import logging
import os
import sys
from datetime import datetime, timezone
from pathlib import Path

import numpy as np


def cmd_validate(args):
    """Validate a run configuration."""
    from synthlik import load_config

    print(f"Validating run configuration: {args.config}")
    print("=" * 60)

    try:
        config = load_config(args.config)
        print(f"Name: {config.name}")
        print(f"Parameters: {config.parameter_names}")
        print(f"Objective: {config.objective['type']}")
        print(f"Sampler: {config.sampler['type']}")
        print(f"Steps: {config.n_steps}")
        print()
        print("VALIDATION: PASSED")
    except FileNotFoundError as e:
        print(f"ERROR: {e}")
        return 1
    except ValueError as e:
        print("VALIDATION: FAILED")
        print(f"Errors:\n{e}")
        return 1

    return 0


def cmd_run(args):
    """Run the sampler described by a configuration."""
    from synthlik import load_config
    from sampling import run_sampler, summarize
    from estimation import SyntheticLikelihoodError

    try:
        config = load_config(args.config)
    except (FileNotFoundError, ValueError) as e:
        print(f"ERROR: {e}")
        return 1

    n_steps = args.steps if args.steps is not None else config.n_steps
    burn_in = args.burn_in if args.burn_in is not None else config.burn_in
    collect = list(dict.fromkeys(config.collect + ["theta"]))

    print(f"Running: {config.name}")
    print("=" * 60)

    try:
        sampler, objective, init = config.build()
        trajectory, state = run_sampler(
            sampler,
            objective,
            init,
            n_steps=n_steps,
            collect=collect,
            parallel=True if args.parallel else config.parallel,
            seed=config.seed,
            progress=not args.quiet
        )
    except SyntheticLikelihoodError as e:
        print(f"ERROR: {type(e).__name__}: {e}")
        return 1

    summary = summarize(trajectory, names=config.parameter_names, burn_in=min(burn_in, n_steps))
    summary.update({
        "name": config.name,
        "sampler": config.sampler["type"],
        "objective": config.objective["type"],
        "n_steps": n_steps,
        "burn_in": burn_in,
        "final_theta": state.theta.tolist(),
        "timestamp": datetime.now(timezone.utc).isoformat()
    })

    out_dir = Path(args.output) if args.output else Path("out") / config.name
    out_dir.mkdir(parents=True, exist_ok=True)
    np.savez(out_dir / "trajectory.npz", **{k: np.asarray(v) for k, v in trajectory.items()})
    (out_dir / "summary.json").write_text(json.dumps(summary, indent=2))

    print("\nPosterior summary:")
    print("-" * 40)
    for name in config.parameter_names:
        mean = summary["mean"][name]
        std = summary["std"][name]
        if mean is None:
            print(f"  {name}: no samples after burn-in")
        else:
            print(f"  {name}: {mean:.4f} +/- {std:.4f}")
    if "acceptance_rate" in summary:
        print(f"\nAcceptance rate: {summary['acceptance_rate']:.3f}")
    print(f"\nSaved to: {out_dir}")

    return 0


def main():
    parser = argparse.ArgumentParser(
        description="Local synthetic likelihood sampling CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  synthlik validate examples/toy_normal/config.yaml
  synthlik run examples/toy_normal/config.yaml -o out/toy_normal
  synthlik run examples/toy_normal/config.yaml --steps 100 --parallel
        """
    )
    parser.add_argument('-v', '--verbose', action='store_true', help='Debug logging')

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    # Validate command
    validate_parser = subparsers.add_parser('validate', help='Validate a run configuration')
    validate_parser.add_argument('config', help='Path to run configuration YAML')

    # Run command
    run_parser = subparsers.add_parser('run', help='Run a configured sampler')
    run_parser.add_argument('config', help='Path to run configuration YAML')
    run_parser.add_argument('-o', '--output', help='Output directory')
    run_parser.add_argument('--steps', type=int, help='Override run.n_steps')
    run_parser.add_argument('--burn-in', type=int, help='Override run.burn_in')
    run_parser.add_argument('--parallel', action='store_true', help='Simulate on a thread pool')
    run_parser.add_argument('-q', '--quiet', action='store_true', help='No progress bar')

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(name)s %(levelname)s: %(message)s"
    )

    if args.command is None:
        parser.print_help()
        return 1

    # Add package to path
    sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

    if args.command == 'validate':
        return cmd_validate(args)
    elif args.command == 'run':
        return cmd_run(args)

    return 0


if __name__ == "__main__":
    sys.exit(main())
