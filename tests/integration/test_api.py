"""
End-to-end tests through the FastAPI app: request → bids → accept → appointment
"""

import logging
from datetime import date, timedelta

import pytest

from repairhub.auth import ROLE_WORKSHOP
from tests.factories import WorkshopFactory


def next_weekday(min_days_ahead: int = 2) -> date:
    day = date.today() + timedelta(days=min_days_ahead)
    while day.weekday() >= 5:
        day += timedelta(days=1)
    return day


@pytest.fixture
def workshops(db_session):
    return (
        WorkshopFactory.create(db_session, user_id="ws-1"),
        WorkshopFactory.create(db_session, user_id="ws-2"),
    )


@pytest.mark.integration
class TestQuoteToAppointmentFlow:
    def test_full_flow(self, client, auth_headers, workshops):
        first, second = workshops
        customer = auth_headers("customer-1")
        ws1 = auth_headers("ws-1", ROLE_WORKSHOP)
        ws2 = auth_headers("ws-2", ROLE_WORKSHOP)

        response = client.post(
            "/requests",
            json={
                "vehicle": {"make": "Toyota", "model": "Camry", "year": 2020},
                "service_categories": ["brakes"],
                "description": "Grinding noise from the front left wheel",
                "invite_workshop_ids": [first.id, second.id],
            },
            headers=customer,
        )
        assert response.status_code == 201
        request_id = response.json()["id"]
        assert response.json()["status"] == "submitted"

        response = client.post(f"/requests/{request_id}/bids/mine/view", headers=ws1)
        assert response.status_code == 200
        assert response.json()["status"] == "viewed"

        response = client.post(f"/requests/{request_id}/bids", json={"amount": 500}, headers=ws1)
        assert response.status_code == 201
        response = client.post(f"/requests/{request_id}/bids", json={"amount": 300}, headers=ws2)
        assert response.status_code == 201
        winning_bid_id = response.json()["id"]

        response = client.post(f"/requests/{request_id}/bids", json={"amount": 250}, headers=ws2)
        assert response.status_code == 409

        response = client.get(f"/requests/{request_id}/bids", headers=customer)
        assert response.status_code == 200
        assert [b["amount"] for b in response.json()["bids"]] == [300, 500]

        response = client.get(f"/requests/{request_id}/bids", headers=ws1)
        assert response.status_code == 200
        view = response.json()
        assert view["bids"] == []
        assert view["own_bid"]["amount"] == 500
        assert view["summary"]["competitors_submitted"] == 1

        response = client.post(
            f"/requests/{request_id}/accept", json={"bid_id": winning_bid_id}, headers=customer
        )
        assert response.status_code == 200
        assert response.json()["status"] == "accepted"
        assert response.json()["accepted_bid_id"] == winning_bid_id

        response = client.post(
            f"/requests/{request_id}/accept", json={"bid_id": winning_bid_id}, headers=customer
        )
        assert response.status_code == 409

        day = next_weekday()
        response = client.post(
            "/appointments",
            json={
                "request_id": request_id,
                "bid_id": winning_bid_id,
                "scheduled_date": day.isoformat(),
                "start_time": "10:00",
            },
            headers=customer,
        )
        assert response.status_code == 201
        appointment = response.json()
        assert appointment["end_time"] == "12:00"
        assert appointment["status"] == "requested"

        response = client.get(
            "/appointments/check-slot",
            params={
                "workshop_id": second.id,
                "date": day.isoformat(),
                "start_time": "11:00",
                "duration": 2,
            },
            headers=customer,
        )
        assert response.status_code == 200
        assert response.json()["available"] is False

        response = client.patch(
            f"/appointments/{appointment['id']}/status",
            json={"status": "confirmed"},
            headers=ws2,
        )
        assert response.status_code == 200
        assert response.json()["status"] == "confirmed"

        response = client.patch(
            f"/appointments/{appointment['id']}/status",
            json={"status": "completed"},
            headers=ws2,
        )
        assert response.status_code == 409


@pytest.mark.integration
class TestApiErrors:
    def test_missing_token_is_401(self, client):
        response = client.get("/requests")
        assert response.status_code == 401

    def test_invalid_token_is_401(self, client):
        response = client.get("/requests", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401

    def test_workshop_cannot_open_request(self, client, auth_headers, workshops):
        response = client.post(
            "/requests",
            json={"vehicle": {"make": "Kia", "model": "Rio"}, "service_categories": ["tires"]},
            headers=auth_headers("ws-1", ROLE_WORKSHOP),
        )
        assert response.status_code == 403

    def test_unknown_request_is_404(self, client, auth_headers):
        response = client.get("/requests/999/bids", headers=auth_headers("customer-1"))
        assert response.status_code == 404

    def test_bad_payload_is_422(self, client, auth_headers):
        response = client.post(
            "/requests",
            json={"vehicle": {"make": "Kia"}, "service_categories": []},
            headers=auth_headers("customer-1"),
        )
        assert response.status_code == 422

    def test_compare_more_than_ten_workshops(self, client, auth_headers):
        response = client.post(
            "/appointments/compare",
            json={"workshop_ids": list(range(1, 12)), "duration": 2},
            headers=auth_headers("customer-1"),
        )
        assert response.status_code == 422

    def test_compare_ranks_workshops(self, client, auth_headers, workshops):
        response = client.post(
            "/appointments/compare",
            json={
                "workshop_ids": [w.id for w in workshops],
                "service_categories": ["oil change"],
                "days_window": 3,
            },
            headers=auth_headers("customer-1"),
        )
        assert response.status_code == 200
        body = response.json()
        assert body["estimated_duration"] == 0.5
        assert len(body["results"]) == 2
        assert body["recommendations"]["best_availability"] == body["results"][0]["workshop_id"]

    def test_estimate(self, client, auth_headers):
        response = client.get(
            "/appointments/estimate",
            params=[("categories", "brakes"), ("categories", "inspection")],
            headers=auth_headers("customer-1"),
        )
        assert response.status_code == 200
        assert response.json()["estimated_duration"] == 3

    def test_health(self, client):
        assert client.get("/health").json() == {"status": "healthy"}

    def test_requests_are_logged(self, client, caplog):
        caplog.set_level(logging.INFO, logger="repairhub.main")

        client.get("/health")

        assert any(
            record.getMessage().startswith("GET /health - 200 (") for record in caplog.records
        )
