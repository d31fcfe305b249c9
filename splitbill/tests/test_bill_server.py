from __future__ import annotations

import base64

from conftest import FakeEngine, make_result
from fastapi.testclient import TestClient

from splitbill.application.session import BillSession
from splitbill.runtime.bill_server import create_app

JPEG = b"\xff\xd8\xff\xe0bill-photo"
GOOD = make_result([("Tea", 2, "10"), ("Cake", 1, "30")], "50")
MISMATCH = make_result([("Tea", 1, "10")], "100")


def _client(*engines: FakeEngine) -> TestClient:
    return TestClient(create_app(lambda: BillSession(list(engines))))


def _upload(client: TestClient, **params: str) -> dict:
    response = client.post("/upload", params=params, files={"file": ("bill.jpg", JPEG, "image/jpeg")})
    assert response.status_code == 200, response.text
    return response.json()


def test_health() -> None:
    with _client() as client:
        assert client.get("/health").json() == {"status": "ok"}


def test_upload_then_next_engine() -> None:
    with _client(FakeEngine("local", MISMATCH), FakeEngine("openai", GOOD)) as client:
        body = _upload(client)
        assert body["status"]["state"] == "engine_failed"
        assert body["status"]["prompt"]["nextEngine"] == "openai"
        assert body["status"]["prompt"]["failureKind"] == "reconciliation_mismatch"

        body = client.post("/engines/next").json()
        assert body["status"]["state"] == "accepted"
        assert [item["description"] for item in body["items"]] == ["Tea", "Cake"]

        assert client.post("/engines/next").status_code == 409

        bill = client.get("/bill", params={"include_image": "true"}).json()
        assert bill["billImage"].startswith("data:image/jpeg;base64,")
        assert "billImage" not in client.get("/bill").json()


def test_json_upload_with_data_url() -> None:
    engine = FakeEngine("local", GOOD)
    data_url = "data:image/jpeg;base64," + base64.b64encode(JPEG).decode("ascii")
    with _client(engine) as client:
        first = client.post("/upload", json={"image": data_url})
        assert first.status_code == 200
        client.post("/upload", json={"image": data_url})
        assert engine.calls == 1
        client.post("/upload", params={"force": "true"}, json={"image": data_url})
        assert engine.calls == 2


def test_upload_without_image_is_rejected() -> None:
    with _client(FakeEngine("local", GOOD)) as client:
        assert client.post("/upload", data={"note": "no file"}).status_code == 400
        assert client.post("/upload", json={"image": ""}).status_code == 400
        response = client.post("/upload", json={"image": "%%% not base64 %%%"})
        assert response.status_code == 400
        assert response.json()["status"] == "error"


def test_cancel_and_accept_best() -> None:
    with _client(FakeEngine("local", MISMATCH), FakeEngine("openai", MISMATCH)) as client:
        assert client.post("/engines/accept-best").status_code == 409
        _upload(client)

        assert client.post("/engines/cancel").json()["status"]["state"] == "cancelled"

        body = client.post("/engines/accept-best").json()
        assert body["status"]["state"] == "accepted"
        assert [item["description"] for item in body["items"]] == ["Tea"]


def test_reset_clears_bill() -> None:
    with _client(FakeEngine("local", GOOD)) as client:
        _upload(client)
        body = client.post("/bill/reset").json()
        assert body["items"] == []
        assert body["status"]["state"] == "idle"
