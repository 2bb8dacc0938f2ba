"""API routes — tests for HTTP status mapping and response shapes.

Tests cover:
    - Health and readiness probes
    - POST /operations/* returns 202 receipts, 200 for completed nonces
    - Domain errors map to the structured error envelope (400/404/409)
    - Request body validation returns 400 with field errors
    - Credential status, operation listing, stats, deposit intake
"""

HOLDER = "0.0.1001"
PRICE = 100_000_000


# ─── Health ──────────────────────────────────────────────────────

async def test_liveness(client):
    response = await client.get("/api/v1/health/")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


async def test_readiness_reports_database(client):
    response = await client.get("/api/v1/health/ready")
    assert response.status_code == 200
    assert response.json()["checks"]["database"] == "healthy"


# ─── Operations ──────────────────────────────────────────────────

async def test_issue_returns_202_receipt(client):
    response = await client.post("/api/v1/operations/issue", json={
        "holder": HOLDER, "deposit_amount": PRICE, "nonce": "issue-1",
    })
    assert response.status_code == 202
    body = response.json()
    assert body["status"] == "SUBMITTED"
    assert body["log_position"] == 1


async def test_completed_nonce_returns_200(client, issue):
    await issue()
    response = await client.post("/api/v1/operations/issue", json={
        "holder": HOLDER, "deposit_amount": PRICE, "nonce": "issue-1",
    })
    assert response.status_code == 200
    assert response.json()["duplicate"] is True
    assert response.json()["result"]["credential"]["holder"] == HOLDER


async def test_over_quota_accrue_returns_400(client, issue):
    await issue()
    response = await client.post("/api/v1/operations/accrue", json={
        "holder": HOLDER, "amount": 1001, "nonce": "acc-1",
    })
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "QUOTA_EXCEEDED"


async def test_terminate_before_cap_returns_409(client, issue):
    await issue()
    response = await client.post("/api/v1/operations/terminate", json={
        "holder": HOLDER, "nonce": "term-1",
    })
    assert response.status_code == 409
    body = response.json()["error"]
    assert body["code"] == "NOT_ELIGIBLE"
    assert body["context"]["holder"] == HOLDER


async def test_malformed_body_returns_field_errors(client, consensus_log):
    response = await client.post("/api/v1/operations/accrue", json={
        "holder": "alice", "amount": "lots",
    })
    assert response.status_code == 400
    fields = {d["field"] for d in response.json()["error"]["details"]}
    assert {"body.holder", "body.amount", "body.nonce"} <= fields
    assert consensus_log.entries == []


async def test_get_operation(client, issue):
    await issue()
    response = await client.get("/api/v1/operations/issue-1")
    assert response.status_code == 200
    assert response.json()["status"] == "COMPLETED"


async def test_unknown_operation_returns_404(client):
    response = await client.get("/api/v1/operations/missing")
    assert response.status_code == 404
    assert response.json()["error"]["code"] == "RESOURCE_NOT_FOUND"


# ─── Credentials ─────────────────────────────────────────────────

async def test_credential_status_for_new_holder(client):
    response = await client.get(f"/api/v1/credentials/{HOLDER}")
    assert response.status_code == 200
    body = response.json()
    assert body["stage"] == "NOT_ISSUED"
    assert body["quota"] is None
    assert [a["action"] for a in body["available_actions"]] == ["ISSUE"]


async def test_credential_status_after_accrual(client, container, confirm, issue):
    await issue()
    await container.coordinator.submit_accrue(HOLDER, 250, "acc-1")
    await confirm()

    body = (await client.get(f"/api/v1/credentials/{HOLDER}")).json()
    assert body["stage"] == "ACTIVE_ACCRUING"
    assert body["quota"]["percent_used"] == 25.0
    assert body["recent_accruals"][0]["op_nonce"] == "acc-1"

    operations = (await client.get(f"/api/v1/credentials/{HOLDER}/operations")).json()
    assert {op["nonce"] for op in operations} == {"issue-1", "acc-1"}


async def test_invalid_holder_returns_400(client):
    response = await client.get("/api/v1/credentials/alice")
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"


async def test_stats(client, issue):
    await issue()
    body = (await client.get("/api/v1/stats")).json()
    assert body["credentials"]["active_credentials"] == 1
    assert body["operations"]["COMPLETED"] == 1
    assert body["economics"]["refund_amount"] == 80_000_000


# ─── Deposits ────────────────────────────────────────────────────

async def test_deposit_notification_accepted(client):
    response = await client.post("/api/v1/deposits/notifications", json={
        "source_event_id": "evt-1", "depositor": HOLDER, "amount": PRICE,
    })
    assert response.status_code == 202
    assert response.json()["status"] == "COORDINATOR_SUBMITTED"

    status = await client.get("/api/v1/deposits/evt-1")
    assert status.json()["coordinator_nonce"] == response.json()["coordinator_nonce"]


async def test_unknown_deposit_returns_404(client):
    response = await client.get("/api/v1/deposits/evt-404")
    assert response.status_code == 404


async def test_reconcile_endpoint(client):
    response = await client.post("/api/v1/deposits/reconcile")
    assert response.status_code == 200
    assert response.json() == {"settled": 0}
