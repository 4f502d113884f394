"""Integration tests for the Disputes API.

Covers:
- Opening a dispute and reading it back with its message thread.
- Evidence and messages, including admin-only internal notes.
- Admin arbitration with a partial refund; the closed dispute then
  rejects further evidence with DISPUTE_CLOSED.
- Raiser resolve / withdraw and role checks.
"""

import pytest

from modules.orders.models import Order

pytestmark = pytest.mark.integration

DISPUTES_URL = "/api/v1/disputes/"


@pytest.fixture()
def dispute_id(client_for, buyer, settled_order):
    response = client_for(buyer).post(
        DISPUTES_URL,
        {"order_id": str(settled_order.id), "reason": "Item damaged", "description": "Torn"},
        format="json",
    )
    assert response.status_code == 201
    return response.json()["id"]


def _url(dispute_id, action=""):
    return f"{DISPUTES_URL}{dispute_id}/{action}"


@pytest.fixture()
def reviewed_dispute_id(client_for, admin, dispute_id):
    response = client_for(admin).patch(_url(dispute_id), {"status": "UNDER_REVIEW"}, format="json")
    assert response.status_code == 200
    return dispute_id


class TestOpenDispute:
    def test_open_returns_detail_with_system_message(self, client_for, admin, dispute_id):
        data = client_for(admin).get(_url(dispute_id)).json()

        assert data["status"] == "OPEN"
        assert data["raised_by_role"] == "BUYER"
        assert data["evidence"] == []
        assert data["messages"][0]["message_type"] == "SYSTEM"
        assert data["messages"][0]["content"] == "Dispute opened: Item damaged"

    def test_second_active_dispute_is_rejected(self, client_for, producer, settled_order, dispute_id):
        response = client_for(producer).post(
            DISPUTES_URL, {"order_id": str(settled_order.id), "reason": "Again"}, format="json"
        )
        assert response.status_code == 409
        assert response.json()["errors"][0]["code"] == "INVALID_STATE"

    def test_pending_order_is_not_disputable(self, client_for, buyer, shared_order):
        response = client_for(buyer).post(
            DISPUTES_URL, {"order_id": str(shared_order.id), "reason": "Late"}, format="json"
        )
        assert response.status_code == 409

    def test_admin_cannot_raise(self, client_for, admin, settled_order):
        response = client_for(admin).post(
            DISPUTES_URL, {"order_id": str(settled_order.id), "reason": "x"}, format="json"
        )
        assert response.status_code == 403

    def test_list_is_scoped_and_filterable(
        self, client_for, buyer, other_buyer, co_producer, dispute_id
    ):
        assert [row["id"] for row in client_for(buyer).get(DISPUTES_URL).json()["results"]] == [
            dispute_id
        ]
        assert client_for(co_producer).get(DISPUTES_URL).json()["count"] == 1
        assert client_for(other_buyer).get(DISPUTES_URL).json()["count"] == 0
        assert client_for(buyer).get(DISPUTES_URL, {"status": "resolved"}).json()["count"] == 0

    def test_outsider_cannot_read(self, client_for, other_buyer, dispute_id):
        response = client_for(other_buyer).get(_url(dispute_id))
        assert response.status_code == 403


class TestEvidenceAndMessages:
    def test_producer_adds_evidence(self, client_for, producer, dispute_id):
        response = client_for(producer).post(
            _url(dispute_id, "evidence/"),
            {"evidence_type": "PHOTO", "file_reference": "s3://bucket/1.jpg", "filename": "1.jpg"},
            format="json",
        )
        assert response.status_code == 201
        assert response.json()["uploaded_by_role"] == "PRODUCER"

    def test_internal_notes_hidden_from_parties(self, client_for, admin, buyer, dispute_id):
        admin_client = client_for(admin)
        response = admin_client.post(
            _url(dispute_id, "messages/"),
            {"content": "Check courier logs", "is_internal": True},
            format="json",
        )
        assert response.status_code == 201

        buyer_thread = client_for(buyer).get(_url(dispute_id, "messages/")).json()
        admin_thread = admin_client.get(_url(dispute_id, "messages/")).json()
        assert "Check courier logs" not in {m["content"] for m in buyer_thread}
        assert "Check courier logs" in {m["content"] for m in admin_thread}

    def test_buyer_cannot_post_internal_note(self, client_for, buyer, dispute_id):
        response = client_for(buyer).post(
            _url(dispute_id, "messages/"), {"content": "psst", "is_internal": True}, format="json"
        )
        assert response.status_code == 403


class TestArbitration:
    def test_partial_refund_closes_dispute(self, client_for, admin, buyer, settled_order, dispute_id):
        admin_client = client_for(admin)
        response = admin_client.patch(_url(dispute_id), {"status": "UNDER_REVIEW"}, format="json")
        assert response.status_code == 200

        response = admin_client.patch(
            _url(dispute_id),
            {"status": "REFUNDED", "refund_amount": "150.00", "resolution": "Half refunded"},
            format="json",
        )

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "REFUNDED"
        assert data["refund_amount"] == "150.00"
        assert data["resolved_at"] is not None
        order = Order.objects.get(id=settled_order.id)
        assert order.payment_status == "PARTIALLY_REFUNDED"
        assert order.delivery_status == "DELIVERED"

        response = client_for(buyer).post(
            _url(dispute_id, "evidence/"),
            {"file_reference": "s3://late.jpg", "filename": "late.jpg"},
            format="json",
        )
        assert response.status_code == 409
        assert response.json()["errors"][0]["code"] == "DISPUTE_CLOSED"

    def test_refund_requires_amount(self, client_for, admin, reviewed_dispute_id):
        response = client_for(admin).patch(
            _url(reviewed_dispute_id), {"status": "REFUNDED"}, format="json"
        )
        assert response.status_code == 400
        assert response.json()["errors"][0]["attr"] == "refund_amount"

    def test_refund_over_total_is_rejected(self, client_for, admin, reviewed_dispute_id):
        response = client_for(admin).patch(
            _url(reviewed_dispute_id), {"status": "REFUNDED", "refund_amount": "300.01"}, format="json"
        )
        assert response.status_code == 400

    @pytest.mark.parametrize("target", ["RESOLVED", "CANCELLED", "REFUNDED"])
    def test_admin_must_review_before_closing(self, client_for, admin, dispute_id, target):
        response = client_for(admin).patch(
            _url(dispute_id), {"status": target, "refund_amount": "10.00"}, format="json"
        )
        assert response.status_code == 400
        assert response.json()["errors"][0]["code"] == "ILLEGAL_TRANSITION"

    def test_only_admin_patches(self, client_for, buyer, dispute_id):
        response = client_for(buyer).patch(_url(dispute_id), {"status": "RESOLVED"}, format="json")
        assert response.status_code == 403


class TestRaiserActions:
    def test_raiser_withdraws(self, client_for, buyer, dispute_id):
        response = client_for(buyer).post(
            _url(dispute_id, "withdraw/"), {"resolution": "Found it"}, format="json"
        )
        assert response.status_code == 200
        assert response.json()["status"] == "CANCELLED"

    def test_raiser_resolves(self, client_for, buyer, dispute_id):
        response = client_for(buyer).post(_url(dispute_id, "resolve/"), {}, format="json")
        assert response.status_code == 200
        assert response.json()["status"] == "RESOLVED"

    def test_non_raiser_cannot_withdraw(self, client_for, producer, dispute_id):
        response = client_for(producer).post(_url(dispute_id, "withdraw/"), {}, format="json")
        assert response.status_code == 403

    def test_closed_dispute_cannot_be_resolved(self, client_for, buyer, dispute_id):
        client = client_for(buyer)
        client.post(_url(dispute_id, "withdraw/"), {}, format="json")
        response = client.post(_url(dispute_id, "resolve/"), {}, format="json")
        assert response.status_code == 409
        assert response.json()["errors"][0]["code"] == "DISPUTE_CLOSED"
