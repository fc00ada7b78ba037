#!/usr/bin/env python3
"""
Allocation Simulation Runner

Runs the engine against mock pools with drifting yields and random vault
flows, then writes the per-step history and a summary report.

Usage:
    # Default run (200 hourly steps, 3 pools)
    python run_simulation.py

    # Longer run, tighter concentration cap, audit trail on
    python run_simulation.py --steps 1000 --cap-bps 4000 --audit

    # Five pools, reproducible
    python run_simulation.py --pools AMM LENDING STAKING LENDING AMM --seed 7
"""

import sys
import json
import argparse
import logging
from datetime import datetime, timezone
from pathlib import Path

# Add src to path
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root / "src"))

from aggregator.report import generate_allocation_report
from monitoring.audit_logger import AuditLogger
from simulation import AllocationSimulator, SimulationConfig
from utils.config import CONFIG, RESULTS_DIR

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def main():
    parser = argparse.ArgumentParser(description="Allocation Simulation Runner")
    parser.add_argument("--steps", type=int, default=200, help="Number of steps")
    parser.add_argument("--step-seconds", type=int, default=3600, help="Seconds per step")
    parser.add_argument("--seed", type=int, default=42, help="Random seed")
    parser.add_argument("--pools", nargs="+", default=["AMM", "LENDING", "STAKING"],
                        help="Pool types to register")
    parser.add_argument("--cap-bps", type=int, default=CONFIG.MAX_POOL_ALLOCATION_BPS,
                        help="Max allocation per pool (bps)")
    parser.add_argument("--threshold-bps", type=int, default=CONFIG.REBALANCE_THRESHOLD_BPS,
                        help="Rebalance yield gap threshold (bps)")
    parser.add_argument("--cooldown", type=int, default=6 * 3600, help="Rebalance cooldown (s)")
    parser.add_argument("--oracle-failure-rate", type=float, default=0.02,
                        help="Probability an oracle read fails")
    parser.add_argument("--audit", action="store_true", help="Write the audit trail to logs/")
    parser.add_argument("--output-dir", type=Path, default=RESULTS_DIR, help="Where to write results")
    parser.add_argument("--quiet", action="store_true", help="Hide the progress bar")

    args = parser.parse_args()

    config = SimulationConfig(
        steps=args.steps,
        step_seconds=args.step_seconds,
        seed=args.seed,
        pool_types=args.pools,
        max_pool_allocation_bps=args.cap_bps,
        rebalance_threshold_bps=args.threshold_bps,
        rebalance_cooldown=args.cooldown,
        oracle_failure_probability=args.oracle_failure_rate
    )

    try:
        sim = AllocationSimulator(config)
    except ValueError as e:
        logger.error(f"Configuration error: {e}")
        sys.exit(1)

    if args.audit:
        AuditLogger().attach(sim.engine)

    history = sim.run(show_progress=not args.quiet)

    stamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
    args.output_dir.mkdir(parents=True, exist_ok=True)

    history_path = args.output_dir / f"simulation_history_{stamp}.csv"
    history.to_csv(history_path)

    report_path = sim.generate_report(history, args.output_dir / f"simulation_{stamp}.md")
    generate_allocation_report(sim.engine, args.output_dir / f"allocation_report_{stamp}.md")

    summary = sim.summary(history)
    logger.info(f"History: {history_path}")
    logger.info(f"Report: {report_path}")
    print(json.dumps(summary, indent=2))


if __name__ == "__main__":
    main()
