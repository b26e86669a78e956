"""API tests for ownership transfers"""
import pytest

from land_registry.services.fees import calculate_transfer_fee
from conftest import create_property, validated_property

CBE_DETAILS = {"account_number": "1000123456789", "pin": "1234"}


async def _approved_property(client, owner, officer, plot_number="BL-001"):
    property_obj = await validated_property(client, owner, officer, plot_number=plot_number)
    init = await client.post(
        f"/api/payments/initialize/{property_obj['id']}", json={"payment_method": "cbe_birr"}, headers=owner.headers
    )
    await client.post(
        f"/api/payments/process/{init.json()['transaction_id']}", json={"details": CBE_DETAILS},
        headers=owner.headers,
    )
    response = await client.put(f"/api/properties/{property_obj['id']}/approve", json={}, headers=officer.headers)
    assert response.json()["status"] == "approved"
    return response.json()


async def _request(client, actor, property_id, new_owner_email="neighbour@example.com", **overrides):
    payload = {
        "property_id": property_id,
        "new_owner_email": new_owner_email,
        "transfer_type": "sale",
        "transfer_reason": "Sold to neighbour",
        "transfer_value": 100000.0,
    }
    payload.update(overrides)
    return await client.post("/api/transfers", json=payload, headers=actor.headers)


async def _pay_fee(client, actor, transfer_id):
    init = await client.post(
        f"/api/transfers/{transfer_id}/pay", json={"payment_method": "cbe_birr"}, headers=actor.headers
    )
    assert init.status_code == 201, init.text
    return await client.post(
        f"/api/payments/process/{init.json()['transaction_id']}", json={"details": CBE_DETAILS},
        headers=actor.headers,
    )


class TestTransferRequest:
    """Tests for starting a transfer"""

    async def test_request_transfer(self, client, owner, other_owner, officer):
        property_obj = await _approved_property(client, owner, officer)

        response = await _request(client, owner, property_obj["id"])
        assert response.status_code == 201
        transfer = response.json()
        fee = calculate_transfer_fee(100000.0)
        assert transfer["status"] == "initiated"
        assert transfer["new_owner_id"] == other_owner.user.id
        assert transfer["total_fee"] == pytest.approx(fee.total_amount)
        assert transfer["fee_paid"] is False

        response = await client.get("/api/transfers/my-transfers", headers=other_owner.headers)
        assert [t["id"] for t in response.json()] == [transfer["id"]]

        response = await client.get("/api/notifications", headers=officer.headers)
        assert "transfer_initiated" in [n["type"] for n in response.json()["notifications"]]

    async def test_only_approved_properties(self, client, owner, other_owner):
        property_obj = await create_property(client, owner)

        response = await _request(client, owner, property_obj["id"])
        assert response.status_code == 409
        assert response.json()["error"] == "INVALID_TRANSITION"

    async def test_only_owner_can_transfer(self, client, owner, other_owner, officer):
        property_obj = await _approved_property(client, owner, officer)

        response = await _request(client, other_owner, property_obj["id"], new_owner_email="owner@example.com")
        assert response.status_code == 403

    async def test_cannot_transfer_to_self(self, client, owner, officer):
        property_obj = await _approved_property(client, owner, officer)

        response = await _request(client, owner, property_obj["id"], new_owner_email="owner@example.com")
        assert response.status_code == 422

    async def test_unknown_new_owner(self, client, owner, officer):
        property_obj = await _approved_property(client, owner, officer)

        response = await _request(client, owner, property_obj["id"], new_owner_email="nobody@example.com")
        assert response.status_code == 404

    async def test_blocked_by_active_dispute(self, client, owner, other_owner, officer):
        property_obj = await _approved_property(client, owner, officer)
        await client.post(
            "/api/disputes",
            json={
                "property_id": property_obj["id"],
                "dispute_type": "boundary_dispute",
                "title": "Fence moved",
                "description": "The neighbour moved the fence two metres.",
            },
            headers=owner.headers,
        )

        response = await _request(client, owner, property_obj["id"])
        assert response.status_code == 409

    async def test_one_active_transfer_per_property(self, client, owner, other_owner, officer):
        property_obj = await _approved_property(client, owner, officer)
        await _request(client, owner, property_obj["id"])

        response = await _request(client, owner, property_obj["id"])
        assert response.status_code == 409
        assert response.json()["error"] == "CONFLICT"


class TestTransferLifecycle:
    """Review, fee payment and completion"""

    async def test_full_transfer(self, client, owner, other_owner, officer, admin):
        property_obj = await _approved_property(client, owner, officer)
        transfer = (await _request(client, owner, property_obj["id"])).json()

        response = await client.put(
            f"/api/transfers/{transfer['id']}/review", json={"notes": "Checking deed"}, headers=officer.headers
        )
        assert response.json()["status"] == "under_review"

        response = await client.put(
            f"/api/transfers/{transfer['id']}/approve", json={"notes": "Deed matches"}, headers=officer.headers
        )
        assert response.status_code == 200
        assert response.json()["status"] == "approved"

        response = await client.put(f"/api/transfers/{transfer['id']}/complete", headers=admin.headers)
        assert response.status_code == 409

        response = await _pay_fee(client, owner, transfer["id"])
        assert response.json()["success"] is True
        assert response.json()["payment"]["payment_type"] == "transfer_fee"
        assert response.json()["payment"]["amount"] == pytest.approx(transfer["total_fee"])

        response = await client.get(f"/api/transfers/{transfer['id']}", headers=owner.headers)
        assert response.json()["fee_paid"] is True

        response = await client.put(f"/api/transfers/{transfer['id']}/complete", headers=officer.headers)
        assert response.status_code == 403

        response = await client.put(f"/api/transfers/{transfer['id']}/complete", headers=admin.headers)
        assert response.status_code == 200
        assert response.json()["status"] == "completed"
        assert response.json()["completion_date"]

        response = await client.get(f"/api/properties/{property_obj['id']}", headers=other_owner.headers)
        assert response.status_code == 200
        assert response.json()["owner_id"] == other_owner.user.id
        assert response.json()["is_transferred"] is True

        response = await client.get(f"/api/properties/{property_obj['id']}", headers=owner.headers)
        assert response.status_code == 403

    async def test_fee_paid_by_current_owner_only(self, client, owner, other_owner, officer):
        property_obj = await _approved_property(client, owner, officer)
        transfer = (await _request(client, owner, property_obj["id"])).json()

        response = await client.post(
            f"/api/transfers/{transfer['id']}/pay", json={"payment_method": "cbe_birr"}, headers=owner.headers
        )
        assert response.status_code == 409

        await client.put(f"/api/transfers/{transfer['id']}/approve", json={}, headers=officer.headers)
        response = await client.post(
            f"/api/transfers/{transfer['id']}/pay", json={"payment_method": "cbe_birr"},
            headers=other_owner.headers,
        )
        assert response.status_code == 403

    async def test_reject_requires_reason(self, client, owner, other_owner, officer):
        property_obj = await _approved_property(client, owner, officer)
        transfer = (await _request(client, owner, property_obj["id"])).json()

        response = await client.put(
            f"/api/transfers/{transfer['id']}/reject", json={"reason": ""}, headers=officer.headers
        )
        assert response.status_code == 422

        response = await client.put(
            f"/api/transfers/{transfer['id']}/reject", json={"reason": "Sale contract unsigned"},
            headers=officer.headers,
        )
        assert response.json()["status"] == "rejected"
        assert response.json()["rejection_reason"] == "Sale contract unsigned"

        response = await client.put(f"/api/transfers/{transfer['id']}/approve", json={}, headers=officer.headers)
        assert response.status_code == 409

        # A rejected transfer no longer blocks a new request
        response = await _request(client, owner, property_obj["id"])
        assert response.status_code == 201

    async def test_cancel_by_previous_owner(self, client, owner, other_owner, officer):
        property_obj = await _approved_property(client, owner, officer)
        transfer = (await _request(client, owner, property_obj["id"])).json()

        response = await client.put(
            f"/api/transfers/{transfer['id']}/cancel", json={"reason": "Buyer withdrew"},
            headers=other_owner.headers,
        )
        assert response.status_code == 403

        response = await client.put(
            f"/api/transfers/{transfer['id']}/cancel", json={"reason": "Buyer withdrew"}, headers=owner.headers
        )
        assert response.status_code == 200
        assert response.json()["status"] == "cancelled"
        assert response.json()["cancellation_reason"] == "Buyer withdrew"

        types = [
            n["type"]
            for n in (await client.get("/api/notifications", headers=other_owner.headers)).json()["notifications"]
        ]
        assert "transfer_update" in types

    async def test_approved_transfer_cannot_be_cancelled(self, client, owner, other_owner, officer):
        property_obj = await _approved_property(client, owner, officer)
        transfer = (await _request(client, owner, property_obj["id"])).json()
        await client.put(f"/api/transfers/{transfer['id']}/approve", json={}, headers=officer.headers)

        response = await client.put(f"/api/transfers/{transfer['id']}/cancel", json={}, headers=owner.headers)
        assert response.status_code == 409

    async def test_officer_listing_filters_by_status(self, client, owner, other_owner, officer):
        first = await _approved_property(client, owner, officer)
        second = await _approved_property(client, owner, officer, plot_number="BL-002")
        transfer = (await _request(client, owner, first["id"])).json()
        await _request(client, owner, second["id"])
        await client.put(f"/api/transfers/{transfer['id']}/approve", json={}, headers=officer.headers)

        response = await client.get("/api/transfers", params={"status": "approved"}, headers=officer.headers)
        assert response.json()["total"] == 1
        assert response.json()["transfers"][0]["id"] == transfer["id"]

        response = await client.get("/api/transfers", headers=owner.headers)
        assert response.status_code == 403

    async def test_outsider_cannot_view(self, client, owner, other_owner, officer, session_maker):
        from conftest import _create_actor
        from land_registry.models.user import UserRole

        property_obj = await _approved_property(client, owner, officer)
        transfer = (await _request(client, owner, property_obj["id"])).json()
        outsider = await _create_actor(session_maker, "outsider@example.com", UserRole.USER)

        response = await client.get(f"/api/transfers/{transfer['id']}", headers=outsider.headers)
        assert response.status_code == 404
