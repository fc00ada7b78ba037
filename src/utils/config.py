"""Configuration management for the allocation engine."""

import os
from pathlib import Path
from dataclasses import dataclass
from dotenv import load_dotenv

# Load environment variables
PROJECT_ROOT = Path(__file__).parent.parent.parent
ENV_FILE = PROJECT_ROOT / "aggregator.env"

if ENV_FILE.exists():
    load_dotenv(ENV_FILE)
else:
    # Try loading from current directory or parent
    load_dotenv()

# Paths
LOGS_DIR = PROJECT_ROOT / "logs"
RESULTS_DIR = PROJECT_ROOT / "results"

# Protocol constants
BPS_DENOMINATOR = 10_000
MAX_YIELD_BPS = 50_000  # 500% APY
MAX_POOLS = 20
SECONDS_PER_YEAR = 365 * 24 * 60 * 60
ZERO_ADDRESS = "0x" + "0" * 40


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return int(value)


@dataclass
class AggregatorConfig:
    # Allocation limits
    MAX_POOL_ALLOCATION_BPS: int = 5000  # Max 50% in one pool
    MIN_ALLOCATION: int = 100  # Dust floor in asset units

    # Rebalance policy
    REBALANCE_THRESHOLD_BPS: int = 100  # 1% APY gap
    REBALANCE_COOLDOWN: int = 3600  # seconds
    MIN_SLIPPAGE_BPS: int = 10
    MAX_SLIPPAGE_BPS: int = 500

    # Collaborators
    ORACLE_URL: str = ""
    KEEPER_INTERVAL: int = 300  # seconds between keeper runs

    @classmethod
    def from_env(cls) -> "AggregatorConfig":
        """Build config from AGG_* environment variables."""
        return cls(
            MAX_POOL_ALLOCATION_BPS=_env_int("AGG_MAX_POOL_ALLOCATION_BPS", cls.MAX_POOL_ALLOCATION_BPS),
            MIN_ALLOCATION=_env_int("AGG_MIN_ALLOCATION", cls.MIN_ALLOCATION),
            REBALANCE_THRESHOLD_BPS=_env_int("AGG_REBALANCE_THRESHOLD_BPS", cls.REBALANCE_THRESHOLD_BPS),
            REBALANCE_COOLDOWN=_env_int("AGG_REBALANCE_COOLDOWN", cls.REBALANCE_COOLDOWN),
            MIN_SLIPPAGE_BPS=_env_int("AGG_MIN_SLIPPAGE_BPS", cls.MIN_SLIPPAGE_BPS),
            MAX_SLIPPAGE_BPS=_env_int("AGG_MAX_SLIPPAGE_BPS", cls.MAX_SLIPPAGE_BPS),
            ORACLE_URL=os.getenv("AGG_ORACLE_URL", ""),
            KEEPER_INTERVAL=_env_int("AGG_KEEPER_INTERVAL", cls.KEEPER_INTERVAL),
        )

    def as_dict(self) -> dict:
        return {
            "max_pool_allocation_bps": self.MAX_POOL_ALLOCATION_BPS,
            "min_allocation": self.MIN_ALLOCATION,
            "rebalance_threshold_bps": self.REBALANCE_THRESHOLD_BPS,
            "rebalance_cooldown": self.REBALANCE_COOLDOWN,
            "min_slippage_bps": self.MIN_SLIPPAGE_BPS,
            "max_slippage_bps": self.MAX_SLIPPAGE_BPS,
        }


CONFIG = AggregatorConfig.from_env()
