from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from replanner.core.sessions import get_session_registry
from replanner.main import app


OPEN_3X3 = ["...", "...", "..."]


@pytest.fixture()
def client() -> TestClient:
    get_session_registry().clear()
    return TestClient(app)


def _create(client: TestClient, **overrides) -> dict:
    body = {
        "grid": OPEN_3X3,
        "start": {"row": 0, "col": 0},
        "goal": {"row": 2, "col": 2},
        "connectivity": 4,
    }
    body.update(overrides)
    resp = client.post("/v1/sessions", json=body)
    assert resp.status_code == 200, resp.text
    return resp.json()


def test_healthz(client: TestClient) -> None:
    resp = client.get("/healthz")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


def test_cors_allows_local_dev_origin(client: TestClient) -> None:
    origin = "http://127.0.0.1:5178"
    resp = client.get("/healthz", headers={"Origin": origin})
    assert resp.status_code == 200
    assert resp.headers.get("access-control-allow-origin") == origin


def test_session_plan_and_replan_after_blocking(client: TestClient) -> None:
    created = _create(client)
    sid = created["session_id"]
    assert created["plan"]["status"] == "success"
    assert created["plan"]["path"] == [[0, 0], [0, 1], [0, 2], [1, 2], [2, 2]]
    assert created["plan"]["cost"] == 4.0

    resp = client.post(f"/v1/sessions/{sid}/cells", json={"block": [{"row": 1, "col": 1}]})
    assert resp.status_code == 200
    assert resp.json()["changed_cells"] == 1

    resp = client.post(f"/v1/sessions/{sid}/plan")
    assert resp.status_code == 200
    plan = resp.json()["plan"]
    assert plan["cost"] == 4.0
    assert [1, 1] not in plan["path"]

    resp = client.post(f"/v1/sessions/{sid}/move", json={"to": {"row": 0, "col": 1}})
    assert resp.status_code == 200
    session = resp.json()["session"]
    assert session["state"] == "move"
    assert session["km"] == 1.0

    resp = client.get(f"/v1/sessions/{sid}")
    assert resp.status_code == 200
    assert resp.json()["start"] == [0, 1]

    resp = client.delete(f"/v1/sessions/{sid}")
    assert resp.status_code == 200
    assert client.get(f"/v1/sessions/{sid}").status_code == 404


def test_edge_change_with_null_cost_blocks_edge(client: TestClient) -> None:
    created = _create(client, grid=["...."], goal={"row": 0, "col": 3})
    sid = created["session_id"]
    assert created["plan"]["cost"] == 3.0

    resp = client.post(
        f"/v1/sessions/{sid}/edges",
        json={"changes": [{"u": {"row": 0, "col": 1}, "v": {"row": 0, "col": 2}, "cost": None}]},
    )
    assert resp.status_code == 200
    assert resp.json() == {"session_id": sid, "accepted": 1, "pending_changes": 1}

    plan = client.post(f"/v1/sessions/{sid}/plan").json()["plan"]
    assert plan == {"status": "no_path", "path": [], "cost": None}
    assert client.get(f"/v1/sessions/{sid}").json()["g_start"] is None


def test_unknown_session_uses_error_envelope(client: TestClient) -> None:
    resp = client.post("/v1/sessions/missing/plan")
    assert resp.status_code == 404
    payload = resp.json()
    assert payload["code"] == "http_error"
    assert payload["status"] == 404
    assert "missing" in payload["message"]


def test_out_of_domain_start_is_a_contract_violation(client: TestClient) -> None:
    resp = client.post(
        "/v1/sessions",
        json={"grid": OPEN_3X3, "start": {"row": 5, "col": 0}, "goal": {"row": 2, "col": 2}},
    )
    assert resp.status_code == 422
    payload = resp.json()
    assert payload["code"] == "collaborator_contract_violation"


def test_request_validation_errors(client: TestClient) -> None:
    resp = client.post(
        "/v1/sessions",
        json={"grid": ["...", ".."], "start": {"row": 0, "col": 0}, "goal": {"row": 1, "col": 1}},
    )
    assert resp.status_code == 422
    assert resp.json()["code"] == "validation_error"

    sid = _create(client)["session_id"]
    resp = client.post(f"/v1/sessions/{sid}/edges", json={"changes": []})
    assert resp.status_code == 422
    assert resp.json()["code"] == "validation_error"

    resp = client.post(f"/v1/sessions/{sid}/move", json={"to": {"row": 9, "col": 9}})
    assert resp.status_code == 422
    assert resp.json()["code"] == "http_error"


def test_cell_costs_shape_mismatch_is_rejected(client: TestClient) -> None:
    resp = client.post(
        "/v1/sessions",
        json={
            "grid": OPEN_3X3,
            "start": {"row": 0, "col": 0},
            "goal": {"row": 2, "col": 2},
            "cell_costs": [[1.0, 1.0], [1.0, 1.0]],
        },
    )
    assert resp.status_code == 422
    assert "cell_costs" in resp.json()["message"]
