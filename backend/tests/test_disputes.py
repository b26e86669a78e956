"""API tests for the dispute lifecycle"""
from conftest import create_property


async def _submit(client, actor, property_id, **overrides):
    payload = {
        "property_id": property_id,
        "dispute_type": "ownership_dispute",
        "title": "Ownership claim by relative",
        "description": "A relative claims part of the plot was inherited.",
    }
    payload.update(overrides)
    return await client.post("/api/disputes", json=payload, headers=actor.headers)


class TestDisputeSubmission:
    """Tests for filing disputes"""

    async def test_submit_dispute(self, client, owner):
        property_obj = await create_property(client, owner)

        response = await _submit(client, owner, property_obj["id"])
        assert response.status_code == 201
        dispute = response.json()
        assert dispute["status"] == "submitted"
        assert dispute["evidence"] == []
        assert len(dispute["timeline"]) == 1

        property_response = await client.get(f"/api/properties/{property_obj['id']}", headers=owner.headers)
        assert property_response.json()["has_active_dispute"] is True

    async def test_one_active_dispute_per_property(self, client, owner):
        property_obj = await create_property(client, owner)
        await _submit(client, owner, property_obj["id"])

        response = await _submit(client, owner, property_obj["id"], title="Second claim")
        assert response.status_code == 409
        assert response.json()["error"] == "CONFLICT"

    async def test_only_owner_can_dispute(self, client, owner, other_owner):
        property_obj = await create_property(client, owner)

        response = await _submit(client, other_owner, property_obj["id"])
        assert response.status_code == 403

    async def test_title_length_limit(self, client, owner):
        property_obj = await create_property(client, owner)

        response = await _submit(client, owner, property_obj["id"], title="x" * 201)
        assert response.status_code == 422

    async def test_officers_notified(self, client, owner, officer):
        property_obj = await create_property(client, owner)
        await _submit(client, owner, property_obj["id"])

        response = await client.get("/api/notifications", headers=officer.headers)
        types = [n["type"] for n in response.json()["notifications"]]
        assert "dispute_submitted" in types


class TestDisputeWithdrawal:
    """Withdrawal requires an early status and a reason"""

    async def test_withdraw_then_withdraw_again(self, client, owner):
        property_obj = await create_property(client, owner)
        dispute = (await _submit(client, owner, property_obj["id"])).json()

        response = await client.put(
            f"/api/disputes/{dispute['id']}/withdraw", json={"reason": "duplicate filing"}, headers=owner.headers
        )
        assert response.status_code == 200
        withdrawn = response.json()
        assert withdrawn["status"] == "withdrawn"
        assert withdrawn["timeline"][-1]["notes"] == "duplicate filing"

        property_response = await client.get(f"/api/properties/{property_obj['id']}", headers=owner.headers)
        assert property_response.json()["has_active_dispute"] is False

        response = await client.put(
            f"/api/disputes/{dispute['id']}/withdraw", json={"reason": "duplicate filing"}, headers=owner.headers
        )
        assert response.status_code == 409
        assert response.json()["error"] == "INVALID_TRANSITION"

    async def test_withdraw_requires_reason(self, client, owner):
        property_obj = await create_property(client, owner)
        dispute = (await _submit(client, owner, property_obj["id"])).json()

        response = await client.put(
            f"/api/disputes/{dispute['id']}/withdraw", json={"reason": "  "}, headers=owner.headers
        )
        assert response.status_code == 422

        response = await client.get(f"/api/disputes/{dispute['id']}", headers=owner.headers)
        assert response.json()["status"] == "submitted"

    async def test_cannot_withdraw_in_mediation(self, client, owner, officer):
        property_obj = await create_property(client, owner)
        dispute = (await _submit(client, owner, property_obj["id"])).json()

        for status in ("under_review", "mediation"):
            response = await client.put(
                f"/api/disputes/{dispute['id']}/status", json={"status": status}, headers=officer.headers
            )
            assert response.status_code == 200, response.text

        response = await client.put(
            f"/api/disputes/{dispute['id']}/withdraw", json={"reason": "settled privately"}, headers=owner.headers
        )
        assert response.status_code == 409

    async def test_officer_cannot_withdraw(self, client, owner, officer):
        property_obj = await create_property(client, owner)
        dispute = (await _submit(client, owner, property_obj["id"])).json()

        response = await client.put(
            f"/api/disputes/{dispute['id']}/withdraw", json={"reason": "duplicate"}, headers=officer.headers
        )
        assert response.status_code == 403

    async def test_new_dispute_allowed_after_withdrawal(self, client, owner):
        property_obj = await create_property(client, owner)
        dispute = (await _submit(client, owner, property_obj["id"])).json()
        await client.put(
            f"/api/disputes/{dispute['id']}/withdraw", json={"reason": "duplicate filing"}, headers=owner.headers
        )

        response = await _submit(client, owner, property_obj["id"], title="Boundary issue", dispute_type="boundary_dispute")
        assert response.status_code == 201


class TestDisputeHandling:
    """Tests for officer actions"""

    async def test_resolve_requires_review_first(self, client, owner, officer):
        property_obj = await create_property(client, owner)
        dispute = (await _submit(client, owner, property_obj["id"])).json()

        response = await client.put(
            f"/api/disputes/{dispute['id']}/resolve", json={"decision": "upheld"}, headers=officer.headers
        )
        assert response.status_code == 409

        await client.put(
            f"/api/disputes/{dispute['id']}/status", json={"status": "under_review"}, headers=officer.headers
        )
        response = await client.put(
            f"/api/disputes/{dispute['id']}/resolve",
            json={"decision": "upheld", "resolution_notes": "Deed confirms ownership"},
            headers=officer.headers,
        )
        assert response.status_code == 200
        resolved = response.json()
        assert resolved["status"] == "resolved"
        assert resolved["resolved_by"] == officer.user.id

        notifications = (await client.get("/api/notifications", headers=owner.headers)).json()["notifications"]
        assert notifications[0]["type"] == "dispute_resolved"

    async def test_status_endpoint_cannot_resolve_or_withdraw(self, client, owner, officer):
        property_obj = await create_property(client, owner)
        dispute = (await _submit(client, owner, property_obj["id"])).json()

        for status in ("resolved", "withdrawn"):
            response = await client.put(
                f"/api/disputes/{dispute['id']}/status", json={"status": status}, headers=officer.headers
            )
            assert response.status_code == 422

    async def test_add_evidence(self, client, owner):
        property_obj = await create_property(client, owner)
        dispute = (await _submit(client, owner, property_obj["id"])).json()

        response = await client.post(
            f"/api/disputes/{dispute['id']}/evidence",
            json={"document_type": "photo", "document_name": "Fence line"},
            headers=owner.headers,
        )
        assert response.status_code == 200
        assert response.json()["evidence"][0]["document_name"] == "Fence line"

        response = await client.post(
            f"/api/disputes/{dispute['id']}/evidence",
            json={"document_type": "hearsay", "document_name": "Rumour"},
            headers=owner.headers,
        )
        assert response.status_code == 422

    async def test_assign_to_land_officer(self, client, owner, officer, admin):
        property_obj = await create_property(client, owner)
        dispute = (await _submit(client, owner, property_obj["id"])).json()

        response = await client.put(
            f"/api/disputes/{dispute['id']}/assign", json={"assigned_to": owner.user.id}, headers=admin.headers
        )
        assert response.status_code == 422

        response = await client.put(
            f"/api/disputes/{dispute['id']}/assign", json={"assigned_to": officer.user.id}, headers=admin.headers
        )
        assert response.status_code == 200
        assert response.json()["assigned_to"] == officer.user.id

    async def test_disputes_hidden_from_other_owners(self, client, owner, other_owner):
        property_obj = await create_property(client, owner)
        dispute = (await _submit(client, owner, property_obj["id"])).json()

        response = await client.get(f"/api/disputes/{dispute['id']}", headers=other_owner.headers)
        assert response.status_code == 404

        response = await client.get("/api/disputes/my-disputes", headers=other_owner.headers)
        assert response.json() == []

    async def test_officer_list_filters(self, client, owner, officer):
        property_obj = await create_property(client, owner)
        await _submit(client, owner, property_obj["id"])

        response = await client.get("/api/disputes", params={"status": "submitted"}, headers=officer.headers)
        assert response.json()["total"] == 1

        response = await client.get("/api/disputes", params={"status": "resolved"}, headers=officer.headers)
        assert response.json()["total"] == 0

        response = await client.get("/api/disputes", headers=owner.headers)
        assert response.status_code == 403
