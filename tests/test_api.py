"""Tests for the FastAPI endpoints."""

import hashlib
import hmac
import json
from decimal import Decimal

import pytest

from liquidesk.config import get_settings
from liquidesk.transfer.base import TransferError, TransferTimeout
from liquidesk.utils.locks import PositionLock

from conftest import BANK_ACCOUNT, BASE_DESTINATION

USER = {"X-User-Id": "user-1"}


async def create_position(client, headers=USER):
    return await client.post(
        "/api/liquidity/create",
        json={"liquidity_type": "onramp", "bank_account": BANK_ACCOUNT},
        headers=headers,
    )


async def funded(client, wallet_service, base="100"):
    response = await create_position(client)
    assert response.status_code == 201
    wallet_service.credit("user-1", "base", Decimal(base))


def withdraw_body(amount="40", network="base"):
    return {"network": network, "amount": amount, "destination_address": BASE_DESTINATION}


class TestHealthEndpoints:
    """Tests for health check endpoints."""

    async def test_health_check(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "service": "liquidesk"}

    async def test_detailed_health(self, client):
        response = await client.get("/health/detailed")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["collaborators"]["transfer_configured"] is True
        assert "environment" in data["config"]


class TestPositionEndpoints:
    async def test_requires_user(self, client):
        response = await client.get("/api/liquidity/position")

        assert response.status_code == 401
        assert response.json()["success"] is False

    async def test_create_position(self, client):
        response = await create_position(client)

        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        assert body["data"]["wallets"]["base_address"].startswith("0x")
        assert body["data"]["bank_account"] == BANK_ACCOUNT
        assert body["data"]["liquidity_position"]["liquidity_type"] == "onramp"

    async def test_create_position_twice(self, client):
        await create_position(client)

        response = await create_position(client)

        assert response.status_code == 400
        assert "already has an active" in response.json()["message"]

    async def test_create_rejects_bad_bank_account(self, client):
        response = await client.post(
            "/api/liquidity/create",
            json={"bank_account": dict(BANK_ACCOUNT, account_number="12345")},
            headers=USER,
        )

        assert response.status_code == 400
        body = response.json()
        assert body["message"] == "Validation failed"
        assert any("account_number" in e["field"] for e in body["errors"])

    async def test_get_position(self, client, wallet_service):
        await funded(client, wallet_service, base="12.5")

        response = await client.get("/api/liquidity/position", headers=USER)

        assert response.status_code == 200
        data = response.json()["data"]
        assert Decimal(data["liquidity_position"]["base_balance"]) == Decimal("12.5")
        assert Decimal(data["live_balances"]["total_usdc"]) == Decimal("12.5")

    async def test_get_position_missing(self, client):
        response = await client.get("/api/liquidity/position", headers=USER)

        assert response.status_code == 404

    async def test_get_wallets(self, client):
        await create_position(client)

        response = await client.get("/api/liquidity/wallets", headers=USER)

        assert response.status_code == 200
        networks = response.json()["data"]["networks"]
        assert networks["base"]["network"] == "Base Mainnet"
        assert networks["solana"]["token"] == "USDC"

    async def test_update_bank_account(self, client):
        await create_position(client)

        response = await client.put(
            "/api/liquidity/bank-account",
            json={"bank_account": dict(BANK_ACCOUNT, bank_code="000014", bank_name="Access Bank")},
            headers=USER,
        )

        assert response.status_code == 200
        assert response.json()["data"]["bank_account"]["bank_code"] == "000014"

    async def test_refresh_balances(self, client, wallet_service):
        await funded(client, wallet_service, base="5")

        response = await client.post("/api/liquidity/refresh-balances", headers=USER)

        assert response.status_code == 200
        assert Decimal(response.json()["data"]["balances"]["base_usdc"]) == Decimal("5")

    async def test_refresh_balances_failure(self, client, wallet_service):
        await create_position(client)
        wallet_service.raise_on_read = True

        response = await client.post("/api/liquidity/refresh-balances", headers=USER)

        assert response.status_code == 500
        assert response.json()["message"] == "Failed to refresh balances"


class TestWithdrawEndpoint:
    async def test_withdraw_success(self, client, wallet_service):
        await funded(client, wallet_service)

        response = await client.post(
            "/api/liquidity/withdraw", json=withdraw_body("40"), headers=USER
        )

        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "Withdrawal completed successfully"
        assert body["data"]["status"] == "confirmed"
        assert body["data"]["tx_hash"] == "0xabc"
        assert body["data"]["gas_fee_paid_by"] == "platform"
        assert Decimal(body["data"]["amount"]) == Decimal("40")

    async def test_insufficient_funds(self, client, wallet_service):
        await funded(client, wallet_service, base="10")

        response = await client.post(
            "/api/liquidity/withdraw", json=withdraw_body("15"), headers=USER
        )

        assert response.status_code == 400
        body = response.json()
        assert body["success"] is False
        assert body["available"] == "10"
        assert body["requested"] == "15"

    async def test_below_minimum(self, client, wallet_service):
        await funded(client, wallet_service)

        response = await client.post(
            "/api/liquidity/withdraw", json=withdraw_body("0.1"), headers=USER
        )

        assert response.status_code == 400
        assert response.json()["message"] == "Validation failed"

    async def test_unknown_network(self, client, wallet_service):
        await funded(client, wallet_service)

        response = await client.post(
            "/api/liquidity/withdraw", json=withdraw_body("1", network="tron"), headers=USER
        )

        assert response.status_code == 400

    async def test_transfer_failure(self, client, wallet_service, executor):
        await funded(client, wallet_service)
        executor.error = TransferError("relay rejected")

        response = await client.post(
            "/api/liquidity/withdraw", json=withdraw_body("5"), headers=USER
        )

        assert response.status_code == 500
        body = response.json()
        assert body["error"] == "relay rejected"
        assert body["data"]["status"] == "failed"
        assert body["data"]["transaction_id"] is not None

    async def test_pending_is_accepted(self, client, wallet_service, executor):
        await funded(client, wallet_service)
        executor.error = TransferTimeout("relay slow")

        response = await client.post(
            "/api/liquidity/withdraw", json=withdraw_body("5"), headers=USER
        )

        assert response.status_code == 202
        assert response.json()["data"]["status"] == "pending"

    async def test_misconfigured_executor(self, client, wallet_service, executor):
        await funded(client, wallet_service)
        executor.configured = False

        response = await client.post(
            "/api/liquidity/withdraw", json=withdraw_body("5"), headers=USER
        )

        assert response.status_code == 500
        assert "not properly configured" in response.json()["message"]

    async def test_lock_conflict(self, client, wallet_service, services):
        await funded(client, wallet_service)
        services.withdrawals.lock_timeout = 0.05

        async with PositionLock("user-1", operation="test"):
            response = await client.post(
                "/api/liquidity/withdraw", json=withdraw_body("5"), headers=USER
            )

        assert response.status_code == 409

    async def test_transactions_listing(self, client, wallet_service):
        await funded(client, wallet_service)
        for amount in ("1", "2", "3"):
            await client.post(
                "/api/liquidity/withdraw", json=withdraw_body(amount), headers=USER
            )

        response = await client.get(
            "/api/liquidity/transactions", params={"page": 1, "limit": 2}, headers=USER
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert [Decimal(t["amount"]) for t in data["transactions"]] == [Decimal("3"), Decimal("2")]
        assert data["pagination"]["total_transactions"] == 3
        assert data["pagination"]["has_next_page"] is True


class TestBankEndpoints:
    async def test_list_banks(self, client):
        response = await client.get("/api/liquidity/banks", headers=USER)

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["total"] == len(data["banks"])

    async def test_verify_account(self, client):
        response = await client.post(
            "/api/liquidity/verify-account",
            json={"account_number": "0123456789", "bank_code": "000013"},
            headers=USER,
        )

        assert response.status_code == 200
        assert response.json()["data"]["is_valid"] is True

    async def test_verify_account_bad_format(self, client):
        response = await client.post(
            "/api/liquidity/verify-account",
            json={"account_number": "123", "bank_code": "000013"},
            headers=USER,
        )

        assert response.status_code == 400
        assert "10 digits" in response.json()["message"]


class TestServiceStatusEndpoint:
    async def test_configured(self, client):
        response = await client.get("/api/liquidity/service-status", headers=USER)

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["configured"] is True
        assert data["executor"] == "ScriptedExecutor"
        assert data["networks"] == ["base", "solana"]
        assert data["gas_fee_paid_by"] == "platform"

    async def test_misconfigured(self, client, executor):
        executor.configured = False

        response = await client.get("/api/liquidity/service-status", headers=USER)

        assert response.status_code == 200
        assert response.json()["data"]["configured"] is False

    async def test_requires_user(self, client):
        response = await client.get("/api/liquidity/service-status")

        assert response.status_code == 401


@pytest.fixture
def settling(executor):
    executor.wallet_service = None
    return executor


class TestSettlementEndpoints:
    SETTLEMENT = {
        "order_id": "ORD-77",
        "customer_wallet": "0x3333333333333333333333333333333333333333",
        "amount": "25.5",
        "token": "USDC",
        "network": "base",
    }

    async def test_request_settlement(self, client, settling):
        response = await client.post("/api/liquidity/request-settlement", json=self.SETTLEMENT)

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["settlement_id"].startswith("SETTLE_")
        assert body["status"] == "initiated"
        assert body["transaction_hash"] == "0xabc"
        assert body["estimated_time"] == "2-5 minutes"

    async def test_missing_token(self, client, settling):
        body = dict(self.SETTLEMENT)
        del body["token"]

        response = await client.post("/api/liquidity/request-settlement", json=body)

        assert response.status_code == 400
        assert response.json()["success"] is False
        assert "Missing required fields" in response.json()["message"]

    async def test_transfer_failure(self, client, settling):
        settling.error = TransferError("liquidity exhausted")

        response = await client.post("/api/liquidity/request-settlement", json=self.SETTLEMENT)

        assert response.status_code == 500
        assert response.json()["data"]["settlement_id"].startswith("SETTLE_")

    async def test_api_key_enforced(self, client, settling, monkeypatch):
        monkeypatch.setattr(get_settings(), "settlement_api_key", "biz-key")

        denied = await client.post("/api/liquidity/request-settlement", json=self.SETTLEMENT)
        allowed = await client.post(
            "/api/liquidity/request-settlement",
            json=self.SETTLEMENT,
            headers={"X-API-Key": "biz-key"},
        )

        assert denied.status_code == 401
        assert allowed.status_code == 200

    async def test_status(self, client, settling):
        created = await client.post("/api/liquidity/request-settlement", json=self.SETTLEMENT)
        settlement_id = created.json()["settlement_id"]

        response = await client.get(f"/api/liquidity/settlement-status/{settlement_id}")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "initiated"
        assert body["order_id"] == "ORD-77"
        assert Decimal(body["amount"]) == Decimal("25.5")

    async def test_status_unknown(self, client):
        response = await client.get("/api/liquidity/settlement-status/SETTLE_0_000000000000")

        assert response.status_code == 404

    async def test_webhook_progress(self, client, settling):
        created = await client.post("/api/liquidity/request-settlement", json=self.SETTLEMENT)
        settlement_id = created.json()["settlement_id"]

        completed = await client.post(
            "/api/liquidity/settlement-webhook",
            json={"settlement_id": settlement_id, "status": "completed", "confirmations": 12},
        )
        late = await client.post(
            "/api/liquidity/settlement-webhook",
            json={"settlement_id": settlement_id, "status": "processing"},
        )

        assert completed.status_code == 200
        assert completed.json()["applied"] is True
        assert late.status_code == 200
        assert late.json()["applied"] is False
        assert late.json()["status"] == "completed"

    async def test_webhook_unknown_settlement(self, client):
        response = await client.post(
            "/api/liquidity/settlement-webhook",
            json={"settlement_id": "SETTLE_0_000000000000", "status": "completed"},
        )

        assert response.status_code == 404

    async def test_webhook_signature(self, client, settling, monkeypatch):
        monkeypatch.setattr(get_settings(), "settlement_webhook_secret", "hook-secret")
        created = await client.post("/api/liquidity/request-settlement", json=self.SETTLEMENT)
        payload = json.dumps(
            {"settlement_id": created.json()["settlement_id"], "status": "processing"}
        ).encode()
        signature = hmac.new(b"hook-secret", payload, hashlib.sha256).hexdigest()

        forged = await client.post(
            "/api/liquidity/settlement-webhook",
            content=payload,
            headers={"Content-Type": "application/json", "X-Webhook-Signature": "sha256=bad"},
        )
        signed = await client.post(
            "/api/liquidity/settlement-webhook",
            content=payload,
            headers={
                "Content-Type": "application/json",
                "X-Webhook-Signature": f"sha256={signature}",
            },
        )

        assert forged.status_code == 401
        assert signed.status_code == 200
        assert signed.json()["applied"] is True
