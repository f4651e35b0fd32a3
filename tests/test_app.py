"""HTTP tests against the FastAPI app with an injected booking core."""

import pytest
from fastapi.testclient import TestClient

from conftest import PROVIDER
from sessionbook.app import create_app
from sessionbook.wizard import get_active_wizards


class FakeSettings:
    def __init__(self, admin_api_key="", debug=False, provider_feed_keys=None):
        self.admin_api_key = admin_api_key
        self.debug = debug
        self.provider_feed_keys = provider_feed_keys or {}


@pytest.fixture
def client(core):
    return TestClient(create_app(core))


def _book(client, start=600, counterparty="c1", payment="cash"):
    return client.post("/bookings", json={
        "provider_id": PROVIDER,
        "counterparty_id": counterparty,
        "rate_id": "r50",
        "date": "2026-03-03",
        "start_minutes": start,
        "payment": payment,
    })


class TestQueries:
    def test_health(self, client):
        body = client.get("/health").json()
        assert body["status"] == "ok"
        assert body["providers"] == 1
        assert body["bookings"] == 0

    def test_rates(self, client):
        body = client.get(f"/providers/{PROVIDER}/rates").json()
        assert [r["id"] for r in body["rates"]] == ["r50", "r90"]
        all_rates = client.get(f"/providers/{PROVIDER}/rates", params={"kind": "all"}).json()
        assert len(all_rates["rates"]) == 3

    def test_rates_with_credit(self, client):
        body = client.get(
            f"/providers/{PROVIDER}/rates", params={"counterparty_id": "c1"},
        ).json()
        credit = {r["id"]: r["credit_remaining"] for r in body["rates"]}
        assert credit == {"r50": 7, "r90": 1}

    def test_slots(self, client):
        body = client.get(f"/providers/{PROVIDER}/slots", params={"rate_id": "r50"}).json()
        assert body["count"] == 10
        assert body["slots"][0]["label"] == "2026-03-02 09:00-09:50"

    def test_slots_in_range(self, client):
        body = client.get(f"/providers/{PROVIDER}/slots", params={
            "rate_id": "r90", "start": "2026-03-03", "end": "2026-03-03",
        }).json()
        assert [s["start_minutes"] for s in body["slots"]] == [540]

    def test_unknown_provider(self, client):
        response = client.get("/providers/nobody/slots", params={"rate_id": "r50"})
        assert response.status_code == 404
        assert response.json()["detail"]["code"] == "UnknownProvider"

    def test_unknown_rate(self, client):
        response = client.get(f"/providers/{PROVIDER}/slots", params={"rate_id": "r1"})
        assert response.status_code == 404
        assert response.json()["detail"]["code"] == "UnknownRate"

    def test_credits(self, client):
        body = client.get(
            f"/providers/{PROVIDER}/credits", params={"counterparty_id": "c1", "rate_id": "r50"},
        ).json()
        assert [c["id"] for c in body["courses"]] == ["cb1"]
        assert [t["id"] for t in body["tokens"]] == ["pbt1"]
        assert body["total_remaining"] == 7


class TestBookings:
    def test_commit_and_conflict(self, client):
        first = _book(client)
        assert first.status_code == 201
        assert first.json()["status"] == "scheduled"

        second = _book(client, counterparty="c2")
        assert second.status_code == 409
        assert second.json()["detail"]["code"] == "SlotTaken"

    def test_commit_with_course(self, client, core):
        response = _book(client, payment="course:cb1")
        assert response.json()["payment_source"] == {"kind": "course", "source_id": "cb1"}
        assert core.ledger.get_course_booking("cb1").sessions_used == 3

    def test_spent_credit(self, client):
        _book(client, start=540, payment="token:pbt1")
        response = _book(client, start=660, payment="token:pbt1")
        assert response.status_code == 409
        assert response.json()["detail"]["code"] == "CreditExhausted"

    def test_bad_payment_is_validation_error(self, client):
        assert _book(client, payment="voucher").status_code == 422

    def test_cancel(self, client):
        booking_id = _book(client).json()["id"]
        response = client.post(f"/bookings/{booking_id}/cancel")
        assert response.json()["status"] == "cancelled"
        assert _book(client, counterparty="c2").status_code == 201

    def test_cancel_unknown(self, client):
        assert client.post("/bookings/bk-nope/cancel").status_code == 404


class TestWizardApi:
    def test_full_flow(self, client):
        started = client.post("/wizards", json={"provider_id": PROVIDER, "counterparty_id": "c1"})
        assert started.status_code == 201
        body = started.json()
        wizard_id = body["wizard_id"]
        assert body["step"] == "selecting_rate"
        assert [r["id"] for r in body["rates"]] == ["r50", "r90"]
        assert body["credit_remaining"] == 8

        url = f"/wizards/{wizard_id}"
        client.post(f"{url}/rate", json={"rate_id": "r50", "payment": "course:cb1"})
        body = client.post(f"{url}/continue").json()
        assert body["step"] == "selecting_slot"
        assert body["slot_count"] == 10

        body = client.post(f"{url}/week/next").json()
        assert body["week_start"] == "2026-03-09"
        assert client.post(f"{url}/week/current").json()["week_start"] == "2026-03-02"

        client.post(f"{url}/slot", json={"date": "2026-03-03", "start_minutes": 600})
        body = client.post(f"{url}/continue").json()
        assert body["step"] == "confirming"
        assert body["slot"]["start_minutes"] == 600

        body = client.post(f"{url}/confirm").json()
        assert body["step"] == "committed"
        assert body["booking"]["payment_source"]["source_id"] == "cb1"

        again = client.post(f"{url}/confirm")
        assert again.status_code == 404
        assert again.json()["detail"]["code"] == "UnknownWizard"

    def test_continue_without_rate(self, client):
        wizard_id = client.post(
            "/wizards", json={"provider_id": PROVIDER, "counterparty_id": "c1"},
        ).json()["wizard_id"]
        response = client.post(f"/wizards/{wizard_id}/continue")
        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "NoRateSelected"
        assert client.get(f"/wizards/{wizard_id}").json()["error"] == "NoRateSelected"

    def test_bad_payment_string(self, client):
        wizard_id = client.post(
            "/wizards", json={"provider_id": PROVIDER, "counterparty_id": "c1"},
        ).json()["wizard_id"]
        response = client.post(f"/wizards/{wizard_id}/rate", json={"rate_id": "r50", "payment": "iou"})
        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "InvalidPayment"

    def test_supervision_wizard(self, client):
        body = client.post("/wizards", json={
            "provider_id": PROVIDER, "counterparty_id": "c1", "kind": "supervision",
        }).json()
        assert [r["id"] for r in body["rates"]] == ["sup60"]

    def test_cancel_unregisters(self, client):
        wizard_id = client.post(
            "/wizards", json={"provider_id": PROVIDER, "counterparty_id": "c1"},
        ).json()["wizard_id"]
        assert client.post(f"/wizards/{wizard_id}/cancel").json()["step"] == "cancelled"
        assert client.get(f"/wizards/{wizard_id}").status_code == 404
        assert client.delete(f"/wizards/{wizard_id}").status_code == 404

    def test_discard_open_wizard(self, client):
        wizard_id = client.post(
            "/wizards", json={"provider_id": PROVIDER, "counterparty_id": "c1"},
        ).json()["wizard_id"]
        assert client.delete(f"/wizards/{wizard_id}").json() == {"discarded": True}
        assert client.get(f"/wizards/{wizard_id}").status_code == 404

    def test_finished_wizards_leave_the_registry(self, client):
        for _ in range(5):
            wizard_id = client.post(
                "/wizards", json={"provider_id": PROVIDER, "counterparty_id": "c1"},
            ).json()["wizard_id"]
            client.post(f"/wizards/{wizard_id}/cancel")
        assert get_active_wizards() == {}

        url = "/wizards/" + client.post(
            "/wizards", json={"provider_id": PROVIDER, "counterparty_id": "c1"},
        ).json()["wizard_id"]
        client.post(f"{url}/rate", json={"rate_id": "r50"})
        client.post(f"{url}/continue")
        client.post(f"{url}/slot", json={"date": "2026-03-03", "start_minutes": 600})
        client.post(f"{url}/continue")
        assert len(get_active_wizards()) == 1
        assert client.post(f"{url}/confirm").json()["step"] == "committed"
        assert get_active_wizards() == {}

    def test_failed_confirm_keeps_wizard(self, client):
        url = "/wizards/" + client.post(
            "/wizards", json={"provider_id": PROVIDER, "counterparty_id": "c1"},
        ).json()["wizard_id"]
        client.post(f"{url}/rate", json={"rate_id": "r50"})
        client.post(f"{url}/continue")
        client.post(f"{url}/slot", json={"date": "2026-03-03", "start_minutes": 600})
        client.post(f"{url}/continue")
        assert _book(client, counterparty="c2").status_code == 201

        response = client.post(f"{url}/confirm")
        assert response.status_code == 409
        assert response.json()["detail"]["code"] == "SlotTaken"
        assert client.get(url).json()["step"] == "selecting_slot"


class TestAdmin:
    def test_requires_token(self, client, monkeypatch):
        monkeypatch.setattr("sessionbook.auth.settings", FakeSettings(admin_api_key="secret"))
        assert client.get("/admin/bookings").status_code == 401

    def test_lists_bookings(self, client, monkeypatch):
        monkeypatch.setattr("sessionbook.auth.settings", FakeSettings(admin_api_key="secret"))
        _book(client)
        response = client.get(
            "/admin/bookings", headers={"Authorization": "Bearer secret"},
        )
        assert response.status_code == 200
        assert response.json()["count"] == 1

    def test_lists_wizards(self, client, monkeypatch):
        monkeypatch.setattr("sessionbook.auth.settings", FakeSettings(debug=True))
        client.post("/wizards", json={"provider_id": PROVIDER, "counterparty_id": "c1"})
        assert client.get("/admin/wizards").json()["count"] == 1

    def test_provider_key_sees_only_its_bookings(self, client, monkeypatch):
        monkeypatch.setattr("sessionbook.auth.settings", FakeSettings(
            admin_api_key="ops", provider_feed_keys={PROVIDER: "key-t1", "t2": "key-t2"},
        ))
        _book(client)
        own = client.get("/admin/bookings", headers={"Authorization": "Bearer key-t1"})
        assert own.json()["count"] == 1
        other = client.get("/admin/bookings", headers={"Authorization": "Bearer key-t2"})
        assert other.json()["count"] == 0

        response = client.get(
            "/admin/bookings", params={"provider_id": PROVIDER},
            headers={"Authorization": "Bearer key-t2"},
        )
        assert response.status_code == 403

    def test_provider_key_cannot_list_wizards(self, client, monkeypatch):
        monkeypatch.setattr("sessionbook.auth.settings", FakeSettings(
            admin_api_key="ops", provider_feed_keys={PROVIDER: "key-t1"},
        ))
        response = client.get("/admin/wizards", headers={"Authorization": "Bearer key-t1"})
        assert response.status_code == 403
        assert client.get("/admin/wizards", headers={"Authorization": "Bearer ops"}).status_code == 200
