from water_billing.models.telemetry import AccountProfile, TelemetryLog
from water_billing.services.telemetry_service import TelemetryService


def add_account(db, user_id="user-1", meter_number="MTR1"):
    db.add(AccountProfile(user_id=user_id, meter_number=meter_number))
    db.commit()


class TestMirror:
    def test_appends_log_entry(self, db):
        add_account(db)

        entry = TelemetryService.mirror(db, "user-1", {"flowRate": 2.5, "valve": "open"})

        assert entry.meter_number == "MTR1"
        assert entry.user_id == "user-1"
        assert entry.data == {"flowRate": 2.5, "valve": "open"}
        assert entry.synced_at is not None

    def test_deleted_record_is_a_no_op(self, db):
        add_account(db)
        assert TelemetryService.mirror(db, "user-1", None) is None
        assert TelemetryService.mirror(db, "user-1", {}) is None
        assert db.query(TelemetryLog).count() == 0

    def test_unknown_user_is_skipped(self, db):
        assert TelemetryService.mirror(db, "ghost", {"flowRate": 1}) is None
        assert db.query(TelemetryLog).count() == 0

    def test_account_without_meter_is_skipped(self, db):
        add_account(db, meter_number=None)
        assert TelemetryService.mirror(db, "user-1", {"flowRate": 1}) is None
        assert db.query(TelemetryLog).count() == 0


class TestTelemetryApi:
    def test_live_write_is_mirrored(self, client):
        client.put("/api/accounts/user-1", json={"meterNumber": "MTR1", "phone": "254712345678"})

        response = client.put("/api/telemetry/live/user-1", json={"flowRate": 2.5, "totalLitres": 120})

        assert response.status_code == 200
        data = response.json()
        assert data["mirrored"] is True
        assert data["meterNumber"] == "MTR1"

        logs = client.get("/api/telemetry/MTR1/logs").json()["logs"]
        assert len(logs) == 1
        assert logs[0]["flowRate"] == 2.5
        assert logs[0]["totalLitres"] == 120
        assert logs[0]["meterNumber"] == "MTR1"
        assert logs[0]["userId"] == "user-1"
        assert logs[0]["syncedAt"]

    def test_logs_newest_first(self, client):
        client.put("/api/accounts/user-1", json={"meterNumber": "MTR1"})
        for reading in range(3):
            client.put("/api/telemetry/live/user-1", json={"reading": reading})

        logs = client.get("/api/telemetry/MTR1/logs", params={"limit": 2}).json()["logs"]

        assert [entry["reading"] for entry in logs] == [2, 1]

    def test_live_write_without_account_still_succeeds(self, client):
        response = client.put("/api/telemetry/live/ghost", json={"flowRate": 1})
        assert response.status_code == 200
        assert response.json()["mirrored"] is False

    def test_delete_does_not_log(self, client, db):
        client.put("/api/accounts/user-1", json={"meterNumber": "MTR1"})

        response = client.delete("/api/telemetry/live/user-1")

        assert response.status_code == 200
        assert db.query(TelemetryLog).count() == 0

    def test_account_roundtrip(self, client):
        client.put("/api/accounts/user-1", json={"meterNumber": "MTR9", "name": "Wanjiru"})
        data = client.get("/api/accounts/user-1").json()
        assert data["userId"] == "user-1"
        assert data["meterNumber"] == "MTR9"
        assert data["name"] == "Wanjiru"

    def test_unknown_account(self, client):
        assert client.get("/api/accounts/ghost").status_code == 404
