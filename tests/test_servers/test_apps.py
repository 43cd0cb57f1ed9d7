"""
HTTP-level tests for FacilitatorServer using FastAPI's TestClient.
"""
import pytest
from fastapi.testclient import TestClient

from x402_facilitator.adapters.evm.adapter import EVMFacilitator
from x402_facilitator.engine.events import SettledEvent, VerifiedEvent, VerifyRejectedEvent
from x402_facilitator.schemas.bases import (
    ErrorCategory,
    InvalidReason,
    SettlementResult,
    SettlementState,
    VerificationResult,
)
from x402_facilitator.servers import FacilitatorServer


@pytest.fixture
def client(stub_facilitator) -> TestClient:
    return TestClient(FacilitatorServer(facilitator=stub_facilitator))


# ========================================================================
# GET routes
# ========================================================================

def test_index(client):
    response = client.get("/")
    assert response.status_code == 200
    assert response.json() == {"message": "x402 facilitator api"}


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


def test_supported(client, relay_address):
    body = client.get("/supported").json()
    assert body["kinds"] == [{"x402Version": 2, "scheme": "exact", "network": "eip155:1"}]
    assert body["extensions"] == []
    assert body["signers"] == {"eip155:*": [relay_address]}


def test_agent_card(stub_facilitator, relay_address, monkeypatch):
    monkeypatch.delenv("FACILITATOR_PUBLIC_URL", raising=False)
    response = TestClient(FacilitatorServer(facilitator=stub_facilitator)).get("/agent.json")
    assert response.status_code == 200

    body = response.json()
    assert body["type"] == "facilitator"
    assert body["protocol"] == "x402"
    assert body["relayAddress"] == relay_address
    assert body["x402"]["version"] == 2
    assert body["x402"]["scheme"] == "exact"
    assert body["x402"]["network"] == "eip155:1"
    assert body["x402"]["baseUrl"] is None
    assert body["x402"]["fees"] == "0"
    assert body["x402"]["endpoints"] == {
        "verify": "/verify",
        "settle": "/settle",
        "supported": "/supported",
        "health": "/health",
    }


def test_agent_card_base_url(stub_facilitator, monkeypatch):
    monkeypatch.setenv("FACILITATOR_PUBLIC_URL", "https://env.facilitator.test")
    from_env = TestClient(FacilitatorServer(facilitator=stub_facilitator))
    assert from_env.get("/agent.json").json()["x402"]["baseUrl"] == "https://env.facilitator.test"

    explicit = TestClient(FacilitatorServer(facilitator=stub_facilitator, public_url="https://pay.example.com"))
    assert explicit.get("/agent.json").json()["x402"]["baseUrl"] == "https://pay.example.com"


def test_agent_card_lists_settlement_asset(relay_private_key, chain_state_ok, fake_ledger, now, relay_address):
    facilitator = EVMFacilitator(
        private_key=relay_private_key,
        chain_state=chain_state_ok,
        ledger=fake_ledger,
        clock=lambda: now,
    )
    body = TestClient(FacilitatorServer(facilitator=facilitator)).get("/agent.json").json()
    assert body["x402"]["assets"] == ["USDC"]
    assert body["relayAddress"] == relay_address


def test_agent_card_failure_is_500(stub_facilitator, monkeypatch):
    def broken():
        raise RuntimeError("rpc down")

    monkeypatch.setattr(stub_facilitator, "supported", broken)
    response = TestClient(FacilitatorServer(facilitator=stub_facilitator)).get("/agent.json")
    assert response.status_code == 500
    assert response.json() == {"error": "internal_error"}


# ========================================================================
# CORS
# ========================================================================

def test_cors_preflight(client):
    response = client.options(
        "/verify",
        headers={
            "Origin": "https://shop.example.com",
            "Access-Control-Request-Method": "POST",
            "Access-Control-Request-Headers": "content-type",
        },
    )
    assert response.status_code == 200
    assert response.headers["access-control-allow-origin"] == "*"
    assert "POST" in response.headers["access-control-allow-methods"]


def test_cors_simple_request(client):
    response = client.get("/supported", headers={"Origin": "https://shop.example.com"})
    assert response.status_code == 200
    assert response.headers["access-control-allow-origin"] == "*"


def test_cors_restricted_origins(stub_facilitator):
    client = TestClient(
        FacilitatorServer(facilitator=stub_facilitator, allow_origins=["https://shop.example.com"])
    )
    allowed = client.get("/health", headers={"Origin": "https://shop.example.com"})
    assert allowed.headers["access-control-allow-origin"] == "https://shop.example.com"

    other = client.get("/health", headers={"Origin": "https://evil.example.com"})
    assert "access-control-allow-origin" not in other.headers


# ========================================================================
# Request envelope
# ========================================================================

@pytest.mark.parametrize("path", ["/verify", "/settle"])
def test_invalid_json(client, stub_facilitator, path):
    response = client.post(path, content=b"{not json", headers={"content-type": "application/json"})
    assert response.status_code == 400
    body = response.json()
    assert body.get("invalidReason", body.get("error")) == "invalid_json"
    assert stub_facilitator.calls == []


@pytest.mark.parametrize(
    "body",
    [{}, {"paymentPayload": {}}, {"paymentRequirements": {}}, [], {"paymentPayload": None, "paymentRequirements": {}}],
)
def test_missing_payload_or_requirements(client, body):
    response = client.post("/verify", json=body)
    assert response.status_code == 400
    assert response.json() == {"isValid": False, "invalidReason": "missing_payload_or_requirements", "payer": None}


def test_invalid_payload_shape(client, verify_request):
    del verify_request["paymentPayload"]["payload"]["authorization"]["nonce"]
    response = client.post("/settle", json=verify_request)
    assert response.status_code == 400
    assert response.json()["error"] == "invalid_payload"
    assert response.json()["success"] is False


# ========================================================================
# /verify
# ========================================================================

def test_verify_valid(client, verify_request, pay_to):
    response = client.post("/verify", json=verify_request)
    assert response.status_code == 200
    assert response.json() == {"isValid": True, "invalidReason": None, "payer": pay_to}


def test_verify_rejected_is_400(make_stub_facilitator, verify_request):
    facilitator = make_stub_facilitator(
        verify_result=VerificationResult.invalid(InvalidReason.AUTHORIZATION_EXPIRED, payer="0xpayer")
    )
    response = TestClient(FacilitatorServer(facilitator=facilitator)).post("/verify", json=verify_request)

    assert response.status_code == 400
    assert response.json() == {"isValid": False, "invalidReason": "authorization_expired", "payer": "0xpayer"}


def test_verify_infrastructure_failure_is_500(make_stub_facilitator, verify_request):
    facilitator = make_stub_facilitator(verify_result=VerificationResult.invalid(InvalidReason.INTERNAL_ERROR))
    response = TestClient(FacilitatorServer(facilitator=facilitator)).post("/verify", json=verify_request)

    assert response.status_code == 500
    assert response.json()["invalidReason"] == "internal_error"


def test_verify_unexpected_exception_is_500(make_stub_facilitator, verify_request):
    facilitator = make_stub_facilitator(verify_result=RuntimeError("boom"))
    response = TestClient(FacilitatorServer(facilitator=facilitator)).post("/verify", json=verify_request)

    assert response.status_code == 500
    assert response.json() == {"isValid": False, "invalidReason": "internal_error", "payer": None}


# ========================================================================
# /settle
# ========================================================================

def test_settle_success(client, verify_request, pay_to):
    response = client.post("/settle", json=verify_request)
    assert response.status_code == 200
    assert response.json() == {
        "success": True,
        "payer": pay_to,
        "transaction": "0x" + "ee" * 32,
        "network": "eip155:1",
        "error": None,
    }


def test_settle_failure_carries_verbatim_error(make_stub_facilitator, verify_request):
    facilitator = make_stub_facilitator(settle_result=SettlementResult(
        success=False,
        state=SettlementState.FAILED,
        error="insufficient funds for gas * price + value",
        error_category=ErrorCategory.SETTLEMENT,
    ))
    response = TestClient(FacilitatorServer(facilitator=facilitator)).post("/settle", json=verify_request)

    assert response.status_code == 400
    assert response.json()["error"] == "insufficient funds for gas * price + value"


def test_settle_unexpected_exception_is_500(make_stub_facilitator, verify_request):
    facilitator = make_stub_facilitator(settle_result=RuntimeError("boom"))
    response = TestClient(FacilitatorServer(facilitator=facilitator)).post("/settle", json=verify_request)

    assert response.status_code == 500
    assert response.json()["error"] == "internal_error"


# ========================================================================
# Hooks
# ========================================================================

def test_hooks_observe_results(stub_facilitator, verify_request):
    app = FacilitatorServer(facilitator=stub_facilitator)
    seen = []

    @app.hook(VerifiedEvent)
    async def on_verified(event, deps):
        seen.append(("verified", event.result.payer))

    async def on_settled(event, deps):
        seen.append(("settled", event.result.transaction))

    app.add_hook(SettledEvent, on_settled)

    client = TestClient(app)
    client.post("/verify", json=verify_request)
    client.post("/settle", json=verify_request)

    assert [kind for kind, _ in seen] == ["verified", "settled"]


def test_rejection_hook_sees_reason(make_stub_facilitator, verify_request):
    facilitator = make_stub_facilitator(verify_result=VerificationResult.invalid(InvalidReason.NONCE_ALREADY_USED))
    app = FacilitatorServer(facilitator=facilitator)
    reasons = []

    @app.hook(VerifyRejectedEvent)
    async def on_rejected(event, deps):
        reasons.append(event.result.invalid_reason)

    TestClient(app).post("/verify", json=verify_request)
    assert reasons == [InvalidReason.NONCE_ALREADY_USED]


# ========================================================================
# End to end with the EVM adapter over fake ledger ports
# ========================================================================

def test_verify_and_settle_through_evm_adapter(relay_private_key, chain_state_ok, fake_ledger, now, verify_request, payer_address):
    facilitator = EVMFacilitator(
        private_key=relay_private_key,
        chain_state=chain_state_ok,
        ledger=fake_ledger,
        clock=lambda: now,
    )
    client = TestClient(FacilitatorServer(facilitator=facilitator))

    verified = client.post("/verify", json=verify_request)
    assert verified.status_code == 200
    assert verified.json()["payer"] == payer_address

    settled = client.post("/settle", json=verify_request)
    assert settled.status_code == 200
    assert settled.json()["success"] is True
    assert settled.json()["transaction"].startswith("0x")
    assert len(fake_ledger.submitted) == 1


def test_expired_payment_through_evm_adapter(relay_private_key, chain_state_ok, fake_ledger, now, make_payload, requirements):
    facilitator = EVMFacilitator(
        private_key=relay_private_key,
        chain_state=chain_state_ok,
        ledger=fake_ledger,
        clock=lambda: now,
    )
    client = TestClient(FacilitatorServer(facilitator=facilitator))
    body = {"paymentPayload": make_payload(valid_before=now + 10), "paymentRequirements": requirements}

    response = client.post("/settle", json=body)
    assert response.status_code == 400
    assert response.json()["error"] == "authorization_expired"
    assert fake_ledger.submitted == []
