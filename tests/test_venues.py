"""
Unit tests for the engine's collaborators

Tests:
- Token ledger transfers, allowances, snapshot/restore
- Mock pool deposit/withdraw and failure switches
- Mock oracle hand-set yields, failures, bounded random walk
- HTTP oracle payload handling
- Yield reader fault isolation
- Vault deposit / redemption flow through the engine
"""

from unittest.mock import MagicMock

import pytest
import requests

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from conftest import make_world
from aggregator.registry import PoolRecord
from aggregator.signals import YieldSignalReader
from venues import (
    HttpYieldOracle, InsufficientAllowance, InsufficientBalance, Journaled,
    MockOracle, MockPool, OracleResponseError, OracleUnavailable,
    PoolCallRejected, SimpleVault, TokenLedger, Venue
)


class TestTokenLedger:
    """Tests for the asset ledger."""

    def test_transfer(self):
        token = TokenLedger()
        token.mint("a", 100)
        token.transfer("a", "b", 40)
        assert token.balance_of("a") == 60
        assert token.balance_of("b") == 40
        assert token.total_supply == 100

    def test_overdraw(self):
        token = TokenLedger()
        token.mint("a", 10)
        with pytest.raises(InsufficientBalance):
            token.transfer("a", "b", 11)

    def test_transfer_from_spends_allowance(self):
        token = TokenLedger()
        token.mint("owner", 100)
        token.approve("owner", "spender", 70)

        token.transfer_from("spender", "owner", "dest", 50)

        assert token.allowance("owner", "spender") == 20
        assert token.balance_of("dest") == 50
        with pytest.raises(InsufficientAllowance):
            token.transfer_from("spender", "owner", "dest", 21)

    @pytest.mark.parametrize("amount", [-1, 1.0, True])
    def test_invalid_amounts(self, amount):
        token = TokenLedger()
        with pytest.raises(ValueError):
            token.mint("a", amount)

    def test_snapshot_restore(self):
        token = TokenLedger()
        token.mint("a", 100)
        token.approve("a", "b", 5)
        state = token.snapshot()

        token.transfer("a", "c", 100)
        token.approve("a", "b", 0)
        token.restore(state)

        assert token.balance_of("a") == 100
        assert token.balance_of("c") == 0
        assert token.allowance("a", "b") == 5

    def test_is_journaled(self):
        assert isinstance(TokenLedger(), Journaled)


class TestMockPool:
    """Tests for pool stand-ins."""

    def _funded(self):
        token = TokenLedger()
        token.mint("engine", 1_000)
        pool = MockPool("0xlend", token, pool_type="LENDING")
        token.approve("engine", pool.address, 1_000)
        return token, pool

    def test_defaults_from_pool_type(self):
        pool = MockPool("0xs", TokenLedger(), pool_type="STAKING")
        assert pool.name == "Staking Pool"
        assert pool.base_apy_bps == 1570
        assert isinstance(pool, Venue)

    def test_deposit_and_withdraw(self):
        token, pool = self._funded()

        pool.deposit("engine", 600)
        pool.withdraw("engine", 200)

        assert pool.balance_of("engine") == 400
        assert token.balance_of(pool.address) == 400
        assert token.balance_of("engine") == 600

    def test_deposit_needs_approval(self):
        token = TokenLedger()
        token.mint("engine", 100)
        pool = MockPool("0xa", token)
        with pytest.raises(InsufficientAllowance):
            pool.deposit("engine", 100)

    def test_cannot_withdraw_more_than_held(self):
        _, pool = self._funded()
        pool.deposit("engine", 100)
        with pytest.raises(PoolCallRejected):
            pool.withdraw("engine", 101)

    def test_failure_switches(self):
        _, pool = self._funded()
        pool.reject_deposits = True
        with pytest.raises(PoolCallRejected):
            pool.deposit("engine", 1)

        pool.reject_deposits = False
        pool.deposit("engine", 10)
        pool.reject_withdrawals = True
        with pytest.raises(PoolCallRejected):
            pool.withdraw("engine", 10)

    def test_deposit_hook(self):
        _, pool = self._funded()
        calls = []
        pool.on_deposit = lambda sender, amount: calls.append((sender, amount))
        pool.deposit("engine", 25)
        assert calls == [("engine", 25)]


class TestMockOracle:
    """Tests for the scripted oracle."""

    def test_set_and_read(self):
        oracle = MockOracle({"0xa": 850})
        oracle.set_yield("0xa", 900)
        assert oracle.current_yield("0xa") == 900
        assert oracle.get_pool_apy("0xa") == 900
        assert oracle.reads == 2

    def test_failures(self):
        oracle = MockOracle({"0xa": 850})
        with pytest.raises(OracleUnavailable):
            oracle.current_yield("0xb")

        oracle.fail("0xa")
        with pytest.raises(OracleUnavailable):
            oracle.current_yield("0xa")

        oracle.recover("0xa")
        assert oracle.current_yield("0xa") == 850

    def test_random_walk_bounded(self):
        oracle = MockOracle({"0xa": 10, "0xb": 49_990}, seed=3)
        for _ in range(50):
            walked = oracle.random_walk(step_bps=500)
            assert all(0 <= v <= 50_000 for v in walked.values())
            assert all(isinstance(v, int) for v in walked.values())

    def test_random_walk_reproducible(self):
        a = MockOracle({"0xa": 1000}, seed=11)
        b = MockOracle({"0xa": 1000}, seed=11)
        assert [a.random_walk() for _ in range(5)] == [b.random_walk() for _ in range(5)]


class TestHttpYieldOracle:
    """Tests for the HTTP oracle with a mocked session."""

    def _oracle(self, payload=None, error=None):
        response = MagicMock()
        response.json.return_value = payload
        if error:
            response.raise_for_status.side_effect = error
        session = MagicMock()
        session.get.return_value = response
        return HttpYieldOracle("https://oracle.test/api/", session=session), session

    def test_reads_apy(self):
        oracle, session = self._oracle({"apy_bps": 1230})

        assert oracle.current_yield("0xlend") == 1230
        session.get.assert_called_once_with(
            "https://oracle.test/api/pools/0xlend/apy", timeout=10.0
        )

    def test_missing_field(self):
        oracle, _ = self._oracle({"apy": 12.3})
        with pytest.raises(OracleResponseError):
            oracle.current_yield("0xlend")

    def test_float_value_rejected(self):
        oracle, _ = self._oracle({"apy_bps": 12.3})
        with pytest.raises(OracleResponseError):
            oracle.current_yield("0xlend")

    def test_http_error_is_a_failed_read(self):
        oracle, _ = self._oracle(error=requests.HTTPError("503 Service Unavailable"))
        reading = YieldSignalReader(oracle).read("0xlend")

        assert reading.ok is False
        assert "HTTPError" in reading.error


class TestYieldSignalReader:
    """Tests for fault-isolated yield refresh."""

    def test_mixed_refresh(self):
        oracle = MockOracle({"a": 900, "b": 1200, "c": 60_000})
        oracle.fail("b")
        records = [PoolRecord("a", 800), PoolRecord("b", 1200), PoolRecord("c", 1500)]

        summary = YieldSignalReader(oracle).refresh(records, now=99)

        assert summary.updated == [("a", 800, 900)]
        assert [r.address for r in summary.failed] == ["b", "c"]
        assert records[0].last_updated == 99
        assert records[2].reported_yield == 1500
        assert summary.reads == 3

    def test_inactive_skipped(self):
        oracle = MockOracle({"a": 900})
        record = PoolRecord("a", 800)
        record.active = False

        summary = YieldSignalReader(oracle).refresh([record], now=1)

        assert summary.reads == 0
        assert oracle.reads == 0


class TestSimpleVault:
    """Tests for the vault stand-in driving the engine."""

    def _vault_world(self):
        world = make_world()
        vault = SimpleVault("vault", world.token)
        vault.connect(world.engine)
        return world, vault

    def test_deposit_pushes_into_engine(self):
        world, vault = self._vault_world()
        world.token.mint("alice", 20_000)

        vault.deposit("alice", 20_000)

        assert world.engine.total_allocated == 20_000
        assert world.token.balance_of("alice") == 0

    def test_withdraw_pulls_shortfall(self):
        world, vault = self._vault_world()
        world.token.mint("alice", 20_000)
        vault.deposit("alice", 20_000)
        idle = vault.idle_balance

        vault.withdraw("alice", idle + 5_000)

        assert world.engine.total_allocated == 15_000
        assert world.token.balance_of("alice") == idle + 5_000
        assert vault.idle_balance == 0

    def test_engine_rejects_non_vault_caller(self):
        world, _ = self._vault_world()
        rogue = SimpleVault("rogue", world.token)
        rogue.connect(world.engine)
        world.token.mint("rogue", 100)

        with pytest.raises(PermissionError):
            rogue.push(100)
