"""
Allocation Report

Tabular view of the registry (pandas) and a markdown summary for
operators: where the capital sits, at what yield, and how concentrated.
"""

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import pandas as pd

from utils.config import BPS_DENOMINATOR, RESULTS_DIR, SECONDS_PER_YEAR

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

COLUMNS = ["address", "name", "pool_type", "yield_bps", "allocation", "share_bps", "last_updated"]


def registry_frame(engine) -> pd.DataFrame:
    """One row per registered pool."""
    records = engine.registry_snapshot()
    total = engine.total_allocated

    rows = []
    for r in records:
        rows.append({
            "address": r.address,
            "name": r.name,
            "pool_type": r.pool_type,
            "yield_bps": r.reported_yield,
            "allocation": r.allocation,
            "share_bps": r.allocation * BPS_DENOMINATOR // total if total else 0,
            "last_updated": r.last_updated,
        })

    return pd.DataFrame(rows, columns=COLUMNS)


def generate_allocation_report(engine, output_path: Optional[Path] = None) -> str:
    """
    Markdown allocation report.

    Args:
        engine: YieldAggregator
        output_path: Optional file to write the report to

    Returns:
        Report text
    """
    df = registry_frame(engine)
    status = engine.status()
    cap = status["max_pool_allocation_bps"]

    lines = [
        "# Allocation Report",
        "",
        f"Generated: {datetime.now(timezone.utc).isoformat()}",
        "",
        "## Summary",
        "",
        f"- Pools: {len(df)}",
        f"- Total allocated: {status['total_allocated']:,}",
        f"- Best pool: {status['best_pool']} ({status['best_yield']} bps)",
        f"- Concentration cap: {cap} bps",
        f"- Paused: {status['paused']}",
        f"- Projected 1y earnings: {engine.projected_yield(SECONDS_PER_YEAR):,}",
        "",
        "## Pools",
        "",
        "| Pool | Type | Yield (bps) | Allocation | Share |",
        "|------|------|-------------|------------|-------|",
    ]

    for _, row in df.sort_values("yield_bps", ascending=False, kind="stable").iterrows():
        flag = " ⚠" if row["share_bps"] > cap else ""
        lines.append(
            f"| {row['name']} | {row['pool_type']} | {row['yield_bps']} | "
            f"{row['allocation']:,} | {row['share_bps'] / 100:.2f}%{flag} |"
        )

    if df.empty:
        lines.append("| - | - | - | - | - |")

    violations = engine.check_invariants()
    lines.extend(["", "## Invariants", ""])
    if violations:
        lines.extend(f"- {v}" for v in violations)
    else:
        lines.append("- All checks passed")

    report = "\n".join(lines) + "\n"

    if output_path is not None:
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(report)
        logger.info(f"Allocation report saved: {output_path}")

    return report


def default_report_path() -> Path:
    stamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
    return RESULTS_DIR / f"allocation_report_{stamp}.md"
