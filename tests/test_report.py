"""
Tests for registry tables and the markdown allocation report
"""

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from conftest import fund, make_world
from aggregator.report import COLUMNS, generate_allocation_report, registry_frame


class TestRegistryFrame:
    def test_columns_and_shares(self, world):
        fund(world, 100_000)
        df = registry_frame(world.engine)

        assert list(df.columns) == COLUMNS
        assert df["allocation"].sum() == 100_000
        assert df.set_index("name")["share_bps"].to_dict() == {"A": 0, "B": 5000, "C": 5000}

    def test_empty_registry(self):
        df = registry_frame(make_world(yields=()).engine)
        assert df.empty
        assert list(df.columns) == COLUMNS


class TestAllocationReport:
    def test_sections(self, world):
        fund(world, 100_000)
        report = generate_allocation_report(world.engine)

        assert report.startswith("# Allocation Report")
        assert "- Total allocated: 100,000" in report
        assert "- Best pool: pool-C (1500 bps)" in report
        assert "- All checks passed" in report
        # highest yield listed first
        assert report.index("| C |") < report.index("| B |") < report.index("| A |")

    def test_escape_valve_flagged(self):
        world = make_world(yields=(1500,))
        fund(world, 10_000)

        report = generate_allocation_report(world.engine)

        assert "⚠" in report
        assert "cap: pool-A holds 10000 > 5000" in report

    def test_written_to_file(self, world, tmp_path):
        path = tmp_path / "reports" / "alloc.md"
        report = generate_allocation_report(world.engine, path)
        assert path.read_text() == report

    def test_empty_registry(self):
        report = generate_allocation_report(make_world(yields=()).engine)
        assert "| - | - | - | - | - |" in report
