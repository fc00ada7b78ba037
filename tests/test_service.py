"""
Integration tests for the aggregator REST service

Tests:
- Read endpoints over the reference world
- Vault allocate / withdraw through HTTP
- Admin lifecycle and role checks
- Engine error to HTTP status mapping
"""

import pytest
from fastapi.testclient import TestClient

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from aggregator import (
    EngineNotPaused, EnginePaused, InsufficientAllocation, PoolAlreadyExists,
    PoolNotFound, ReentrancyError, Unauthorized, VenueCallFailed, ZeroAmount
)
from automation import AppState, app, get_state, status_for

ADMIN_HEADERS = {"X-Caller": "admin"}
VAULT_HEADERS = {"X-Caller": "vault"}


@pytest.fixture
def state(tmp_path):
    return AppState(log_dir=tmp_path, oracle_url="")


@pytest.fixture
def client(state):
    app.dependency_overrides[get_state] = lambda: state
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestReadEndpoints:
    """Tests for GET endpoints."""

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["pools"] == 3
        assert data["total_allocated"] == 0

    def test_pools(self, client):
        pools = client.get("/pools").json()
        assert [p["address"] for p in pools] == ["pool-amm", "pool-lending", "pool-staking"]
        assert [p["reported_yield"] for p in pools] == [850, 1230, 1570]

    def test_single_pool_and_missing_pool(self, client):
        assert client.get("/pools/pool-amm").json()["pool_type"] == "AMM"

        response = client.get("/pools/pool-nope")
        assert response.status_code == 404
        assert response.json()["error"] == "PoolNotFound"

    def test_best_pool(self, client):
        assert client.get("/best_pool").json() == {"address": "pool-staking", "yield_bps": 1570}

    def test_preview_does_not_move_capital(self, client, state):
        data = client.get("/preview", params={"amount": 10_000}).json()

        assert data["path"] == "multi"
        assert data["placements"] == {"pool-staking": 5_000, "pool-lending": 5_000}
        assert state.engine.total_allocated == 0

    def test_preview_rejects_zero(self, client):
        assert client.get("/preview", params={"amount": 0}).status_code == 422

    def test_projected_yield(self, client):
        client.post("/allocate", json={"amount": 100_000}, headers=VAULT_HEADERS)
        data = client.get("/projected_yield", params={"duration": 365 * 24 * 3600}).json()
        # 50_000 @ 15.70% + 50_000 @ 12.30%
        assert data["projected_yield"] == 14_000

    def test_metrics_exposition(self, client):
        client.post("/allocate", json={"amount": 10_000}, headers=VAULT_HEADERS)
        response = client.get("/metrics")
        assert response.status_code == 200
        assert 'yield_aggregator_allocations_total{path="multi"} 1.0' in response.text

    def test_report(self, client):
        response = client.get("/report")
        assert response.status_code == 200
        assert response.text.startswith("# Allocation Report")
        assert "Staking Pool" in response.text

    def test_events_tail(self, client):
        events = client.get("/events", params={"n": 2}).json()
        assert [e["event_type"] for e in events] == ["pool_added", "pool_added"]
        assert events[-1]["pool"] == "pool-staking"


class TestVaultEndpoints:
    """Tests for allocate / withdraw."""

    def test_allocate(self, client, state):
        response = client.post("/allocate", json={"amount": 10_000}, headers=VAULT_HEADERS)

        assert response.status_code == 200
        assert response.json()["placements"] == {"pool-staking": 5_000, "pool-lending": 5_000}
        assert state.engine.total_allocated == 10_000
        assert client.get("/allocations").json() == {
            "pool-amm": 0, "pool-lending": 5_000, "pool-staking": 5_000
        }

    def test_allocate_requires_vault_role(self, client, state):
        response = client.post("/allocate", json={"amount": 10_000}, headers={"X-Caller": "mallory"})

        assert response.status_code == 403
        assert response.json()["error"] == "Unauthorized"
        assert state.engine.total_allocated == 0
        assert state.token.allowance("mallory", state.engine.address) == 0

    def test_allocate_requires_caller_header(self, client):
        assert client.post("/allocate", json={"amount": 10_000}).status_code == 422

    def test_withdraw(self, client, state):
        client.post("/allocate", json={"amount": 10_000}, headers=VAULT_HEADERS)

        response = client.post("/withdraw", json={"amount": 4_000}, headers=VAULT_HEADERS)

        assert response.status_code == 200
        assert response.json()["draws"] == {"pool-staking": 4_000}
        assert state.engine.total_allocated == 6_000

    def test_withdraw_over_total(self, client):
        response = client.post("/withdraw", json={"amount": 1}, headers=VAULT_HEADERS)
        assert response.status_code == 409
        assert response.json()["error"] == "InsufficientAllocation"

    def test_venue_failure_is_bad_gateway(self, client, state):
        state.pools["pool-staking"].reject_deposits = True

        response = client.post("/allocate", json={"amount": 10_000}, headers=VAULT_HEADERS)

        assert response.status_code == 502
        assert state.engine.total_allocated == 0
        assert state.token.allowance("vault", state.engine.address) == 0


class TestOpenEndpoints:
    """Tests for rebalance / refresh."""

    def test_rebalance_moves_toward_best(self, client, state):
        client.post("/allocate", json={"amount": 100_000}, headers=VAULT_HEADERS)
        state.oracle.set_yield("pool-amm", 3000)

        data = client.post("/rebalance", headers={"X-Caller": "keeper"}).json()

        assert data["executed"] is True
        assert data["best_pool"] == "pool-amm"
        assert data["total_moved"] == 50_000

    def test_rebalance_without_laggards(self, client):
        data = client.post("/rebalance").json()
        assert data["executed"] is False
        assert data["skipped_reason"] == "no_laggards"

    def test_refresh_yields(self, client, state):
        state.oracle.set_yield("pool-amm", 900)
        state.oracle.fail("pool-lending")

        data = client.post("/refresh_yields").json()

        assert data["updated"] == [{"pool": "pool-amm", "old": 850, "new": 900}]
        assert [f["pool"] for f in data["failed"]] == ["pool-lending"]


class TestAdminEndpoints:
    """Tests for the admin lifecycle."""

    def test_add_pool(self, client, state):
        response = client.post(
            "/pools",
            json={"address": "pool-lending-2", "pool_type": "LENDING", "initial_yield": 2000},
            headers=ADMIN_HEADERS
        )

        assert response.status_code == 200
        assert response.json()["reported_yield"] == 2000
        assert state.oracle.current_yield("pool-lending-2") == 2000
        assert client.get("/best_pool").json()["address"] == "pool-lending-2"

    def test_add_duplicate_pool(self, client):
        response = client.post("/pools", json={"address": "pool-amm"}, headers=ADMIN_HEADERS)
        assert response.status_code == 409

    def test_add_pool_requires_admin(self, client):
        response = client.post("/pools", json={"address": "pool-x"}, headers=VAULT_HEADERS)
        assert response.status_code == 403

    def test_remove_pool_drains_to_vault(self, client, state):
        client.post("/allocate", json={"amount": 10_000}, headers=VAULT_HEADERS)
        before = state.token.balance_of("vault")

        response = client.delete("/pools/pool-staking", headers=ADMIN_HEADERS)

        assert response.json() == {"address": "pool-staking", "drained": 5_000}
        assert state.token.balance_of("vault") == before + 5_000
        assert "pool-staking" not in state.pools

    def test_pause_blocks_allocate_not_withdraw(self, client):
        client.post("/allocate", json={"amount": 10_000}, headers=VAULT_HEADERS)
        assert client.post("/pause", headers=ADMIN_HEADERS).status_code == 200

        blocked = client.post("/allocate", json={"amount": 10_000}, headers=VAULT_HEADERS)
        assert blocked.status_code == 409
        assert blocked.json()["error"] == "EnginePaused"

        assert client.post("/withdraw", json={"amount": 1_000}, headers=VAULT_HEADERS).status_code == 200

        assert client.post("/unpause", headers=ADMIN_HEADERS).status_code == 200
        assert client.post("/unpause", headers=ADMIN_HEADERS).status_code == 409

    def test_limits_validation(self, client):
        ok = client.post(
            "/limits", json={"max_pool_allocation_bps": 6000, "min_allocation": 50}, headers=ADMIN_HEADERS
        )
        assert ok.status_code == 200
        assert client.get("/status").json()["max_pool_allocation_bps"] == 6000

        bad = client.post(
            "/limits", json={"max_pool_allocation_bps": 10_001, "min_allocation": 50}, headers=ADMIN_HEADERS
        )
        assert bad.status_code == 422

    def test_policy_and_cooldown(self, client):
        assert client.post(
            "/policy", json={"rebalance_threshold_bps": 250}, headers=ADMIN_HEADERS
        ).status_code == 200
        assert client.post("/cooldown", json={"seconds": 60}, headers=ADMIN_HEADERS).status_code == 200

        status = client.get("/status").json()
        assert status["rebalance_threshold_bps"] == 250
        assert status["rebalance_cooldown"] == 60

    def test_emergency_unwind(self, client, state):
        client.post("/allocate", json={"amount": 10_000}, headers=VAULT_HEADERS)

        data = client.post("/emergency_unwind", headers=ADMIN_HEADERS).json()

        assert data["forwarded"] == 10_000
        assert state.engine.total_allocated == 0
        assert client.get("/reconcile").json()["is_reconciled"] is True


class TestStatusMapping:
    """Tests for engine error → HTTP status."""

    @pytest.mark.parametrize("exc,status", [
        (Unauthorized("x", "admin"), 403),
        (PoolNotFound("p"), 404),
        (ZeroAmount("allocate"), 422),
        (VenueCallFailed("p", "deposit", 1, "boom"), 502),
        (PoolAlreadyExists("p"), 409),
        (InsufficientAllocation(2, 1), 409),
        (EnginePaused("allocate"), 409),
        (EngineNotPaused(), 409),
        (ReentrancyError("rebalance", "allocate"), 409),
    ])
    def test_status_for(self, exc, status):
        assert status_for(exc) == status


class TestVaultApproval:
    """The allowance issued for /allocate never outlives a rejected call."""

    def test_paused_allocate_leaves_no_allowance(self, client, state):
        client.post("/pause", headers=ADMIN_HEADERS)

        response = client.post("/allocate", json={"amount": 5_000}, headers=VAULT_HEADERS)

        assert response.status_code == 409
        assert state.token.allowance("vault", state.engine.address) == 0

    def test_successful_allocate_spends_allowance(self, client, state):
        client.post("/allocate", json={"amount": 5_000}, headers=VAULT_HEADERS)
        assert state.token.allowance("vault", state.engine.address) == 0
