"""
API Test

Exercises the HTTP surface end to end with FastAPI's TestClient:
camelCase payloads, X-Actor propagation and domain error mapping.
"""

from datetime import date

import pytest
from fastapi.testclient import TestClient

from api.server import create_app
from core.audit import InMemoryAuditBackend


@pytest.fixture
def client(settings):
    with TestClient(create_app(settings)) as test_client:
        yield test_client


@pytest.fixture
def audit_backend(client):
    backend = InMemoryAuditBackend()
    client.app.state.services.audit.add_backend(backend)
    return backend


def create_record(client, **overrides):
    payload = {
        "date": date.today().isoformat(),
        "truckNo": "T100 ABC",
        "goingDo": "DO100",
        "fromLocation": "DAR",
        "toLocation": "NDOLA",
        "totalLts": 2000,
    }
    payload.update(overrides)
    response = client.post("/fuel-records", json=payload, headers={"X-Actor": "fuel_office"})
    assert response.status_code == 201, response.text
    return response.json()


class TestHealth:

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["services"]["database"] == "up"
        assert response.json()["services"]["slack"] == "disabled"

    def test_probes(self, client):
        assert client.get("/ready").json() == {"status": "ready"}
        assert client.get("/live").json() == {"status": "alive"}

    def test_request_id_is_echoed(self, client):
        response = client.get("/live", headers={"X-Request-ID": "req-42"})

        assert response.headers["X-Request-ID"] == "req-42"

    def test_metrics(self, client):
        response = client.get("/metrics")

        assert response.status_code == 200
        assert "reconciliation" in response.json()


class TestFuelRecordsApi:

    def test_create_and_fetch(self, client):
        record = create_record(client)

        assert record["balance"] == 2000
        assert record["journeyStatus"] == "active"

        fetched = client.get(f"/fuel-records/{record['id']}").json()
        assert fetched["goingDo"] == "DO100"
        assert client.get("/fuel-records/do/DO100").json()["id"] == record["id"]

        page = client.get("/fuel-records", params={"truck_no": "T100"}).json()
        assert page["total"] == 1
        assert page["pageSize"] == 50

    def test_unknown_record_is_404(self, client):
        assert client.get("/fuel-records/404").status_code == 404
        assert client.get("/fuel-records/do/DO404").status_code == 404

    def test_duplicate_do_is_400(self, client):
        create_record(client)

        response = client.post("/fuel-records", json={
            "date": date.today().isoformat(), "truckNo": "T200 BBB", "goingDo": "DO100", "totalLts": 1000,
        })

        assert response.status_code == 400
        assert response.json()["detail"]["goingDo"] == "DO100"

    def test_manual_correction(self, client):
        record = create_record(client)

        response = client.put(f"/fuel-records/{record['id']}", json={"extra": 100, "zambiaGoing": 300})

        assert response.status_code == 200
        assert response.json()["balance"] == 1800

    def test_actor_reaches_audit(self, client, audit_backend):
        record = create_record(client)

        client.post(f"/fuel-records/{record['id']}/cancel", json={"reason": "Trip cancelled"},
                    headers={"X-Actor": "supervisor"})

        cancels = audit_backend.query(event_type="CANCEL")
        assert cancels[0].actor == "supervisor"
        assert cancels[0].details["reason"] == "Trip cancelled"

    def test_delete(self, client):
        record = create_record(client)

        assert client.delete(f"/fuel-records/{record['id']}").status_code == 204
        assert client.get(f"/fuel-records/{record['id']}").status_code == 404


class TestLpoApi:

    def test_document_updates_fuel_record(self, client):
        record = create_record(client)

        response = client.post("/lpo-summaries", json={
            "date": date.today().isoformat(),
            "station": "LAKE NDOLA",
            "entries": [{"doNo": "DO100", "truckNo": "T100 ABC", "liters": 100, "rate": 1.2}],
        })
        assert response.status_code == 201, response.text
        summary = response.json()
        assert summary["lpoNo"] == "2445"
        assert summary["entries"][0]["reconciliationStatus"] == "applied"

        fuel = client.get(f"/fuel-records/{record['id']}").json()
        assert (fuel["zambiaGoing"], fuel["balance"]) == (100, 1900)

        assert client.delete(f"/lpo-summaries/{summary['id']}").status_code == 204
        assert client.get(f"/fuel-records/{record['id']}").json()["balance"] == 2000

    def test_next_number_and_lookup(self, client):
        assert client.get("/lpo-summaries/next-number").json() == {"nextLpoNo": "2445"}
        assert client.get("/lpo-summaries/by-number/2445").status_code == 404

    def test_pending_entry_retry(self, client):
        entry = client.post("/lpo-entries", json={
            "lpoNo": "3001", "date": date.today().isoformat(), "station": "INFINITY",
            "doNo": "DO100", "truckNo": "T100 ABC", "liters": 250,
        }).json()
        assert entry["reconciliationStatus"] == "pending"

        create_record(client)
        applied = client.post("/lpo-entries/retry-pending").json()

        assert [e["id"] for e in applied] == [entry["id"]]
        assert applied[0]["fuelField"] == "mbeya_going"

    def test_invalid_payload_is_422(self, client):
        response = client.post("/lpo-entries", json={"lpoNo": "3001", "liters": -5})

        assert response.status_code == 422


class TestYardFuelApi:

    def test_pending_then_linked(self, client):
        dispense = client.post("/yard-fuel", json={"truckNo": "T100 ABC", "liters": 250, "yard": "DAR YARD"},
                               headers={"X-Actor": "dar_yard"}).json()
        assert dispense["status"] == "pending"
        assert dispense["enteredBy"] == "dar_yard"
        assert [d["id"] for d in client.get("/yard-fuel/pending").json()] == [dispense["id"]]

        record = create_record(client)

        linked = client.get(f"/yard-fuel/{dispense['id']}").json()
        assert linked["status"] == "linked"
        assert linked["linkedDONumber"] == "DO100"
        assert client.get(f"/fuel-records/{record['id']}").json()["darYard"] == 250

    def test_reject_without_reason_is_400(self, client):
        dispense = client.post("/yard-fuel", json={"truckNo": "T100 ABC", "liters": 250, "yard": "DAR YARD"}).json()

        response = client.post(f"/yard-fuel/{dispense['id']}/reject", json={"reason": ""})

        assert response.status_code == 400

    def test_rejection_history(self, client):
        dispense = client.post("/yard-fuel", json={"truckNo": "T100 ABC", "liters": 250, "yard": "DAR YARD"}).json()
        client.post(f"/yard-fuel/{dispense['id']}/reject", json={"reason": "Duplicate entry"},
                    headers={"X-Actor": "supervisor"})

        history = client.get("/yard-fuel/rejections", params={"yard": "DAR YARD"}).json()

        assert [d["id"] for d in history] == [dispense["id"]]
        assert history[0]["rejectionReason"] == "Duplicate entry"
        assert history[0]["rejectedBy"] == "supervisor"
        assert client.get("/yard-fuel/rejections", params={"yard": "TANGA YARD"}).json() == []

    def test_unknown_yard_is_400(self, client):
        response = client.post("/yard-fuel", json={"truckNo": "T100 ABC", "liters": 250, "yard": "MOON YARD"})

        assert response.status_code == 400


class TestCheckpointsApi:

    def test_crud_and_reorder(self, client, audit_backend):
        for name in ("DAR", "MOROGORO"):
            response = client.post("/checkpoints", json={
                "name": name, "displayName": name.title(), "region": "Coast", "country": "Tanzania",
            }, headers={"X-Actor": "admin"})
            assert response.status_code == 201
        dar, morogoro = client.get("/checkpoints").json()

        response = client.put("/checkpoints/reorder", json={"checkpoints": [
            {"id": morogoro["id"], "order": 1}, {"id": dar["id"], "order": 2},
        ]})

        assert response.json() == {"updated": 2}
        assert [c["name"] for c in client.get("/checkpoints").json()] == ["MOROGORO", "DAR"]
        assert audit_backend.query(event_type="CHECKPOINTS_REORDERED")

    def test_reorder_unknown_is_400(self, client):
        response = client.put("/checkpoints/reorder", json={"checkpoints": [{"id": 404, "order": 1}]})

        assert response.status_code == 400


class TestNotificationsApi:

    def test_list_read_and_dismiss(self, client):
        client.post("/yard-fuel", json={"truckNo": "T100 ABC", "liters": 250, "yard": "DAR YARD"})

        assert client.get("/notifications/unread-count").json() == {"count": 2}
        pending = client.get("/notifications", params={"status": "pending"}).json()
        assert len(pending) == 1
        assert pending[0]["type"] == "truck_pending_linking"

        assert client.post(f"/notifications/{pending[0]['id']}/read").json()["isRead"] is True
        dismissed = client.post(f"/notifications/{pending[0]['id']}/dismiss", headers={"X-Actor": "clerk"}).json()
        assert dismissed["status"] == "dismissed"
        assert dismissed["resolvedBy"] == "clerk"
        assert client.post("/notifications/404/read").status_code == 404


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
