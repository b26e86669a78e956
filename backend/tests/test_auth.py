"""Tests for the authentication service"""
from datetime import timedelta

import pytest

from land_registry.exceptions import AuthenticationError, ConflictError, ValidationError
from land_registry.models.user import UserRole
from land_registry.services.auth import AuthService, validate_password_strength

from conftest import PASSWORD


class TestPasswordPolicy:

    @pytest.mark.parametrize("password", ["short1A", "alllowercase1", "ALLUPPERCASE1", "NoDigitsHere"])
    def test_weak_passwords_rejected(self, password):
        with pytest.raises(ValidationError) as exc_info:
            validate_password_strength(password)
        assert exc_info.value.details["errors"]

    def test_strong_password_accepted(self):
        validate_password_strength(PASSWORD)


class TestAccounts:
    """Tests for account creation and login"""

    async def test_email_is_case_insensitive(self, db):
        service = AuthService(db)
        await service.create_user("Tigist@Example.com", PASSWORD)

        with pytest.raises(ConflictError):
            await service.create_user("tigist@example.com", PASSWORD)

        user = await service.authenticate_user("TIGIST@example.com", PASSWORD)
        assert user.email == "tigist@example.com"
        assert user.last_login is not None

    async def test_wrong_password(self, db, owner):
        with pytest.raises(AuthenticationError):
            await AuthService(db).authenticate_user(owner.user.email, "Wrong12345")

    async def test_disabled_account(self, db, owner, admin):
        service = AuthService(db)
        user = await service.require_user(owner.user.id)
        await service.set_active(user, False, admin.user)

        with pytest.raises(AuthenticationError) as exc_info:
            await service.authenticate_user(owner.user.email, PASSWORD)
        assert "disabled" in exc_info.value.message

    async def test_admin_cannot_demote_self(self, db, admin):
        service = AuthService(db)
        user = await service.require_user(admin.user.id)

        with pytest.raises(ValidationError):
            await service.set_role(user, UserRole.USER, user)
        with pytest.raises(ValidationError):
            await service.set_active(user, False, user)

    async def test_promote_to_land_officer(self, db, owner, admin):
        service = AuthService(db)
        user = await service.set_role(await service.require_user(owner.user.id), UserRole.LAND_OFFICER, admin.user)
        assert user.is_officer is True

    async def test_list_users_by_role(self, db, owner, other_owner, officer):
        users, total = await AuthService(db).list_users(role=UserRole.USER)
        assert total == 2
        assert {u.email for u in users} == {owner.user.email, other_owner.user.email}


class TestPasswordReset:

    async def test_reset_flow(self, db, owner):
        service = AuthService(db)
        token = await service.generate_reset_token(owner.user.email)
        assert token

        assert await service.reset_password(token, "NewPassword456") is True
        assert await service.reset_password(token, "NewPassword789") is False

        await service.authenticate_user(owner.user.email, "NewPassword456")

    async def test_unknown_email_gets_no_token(self, db):
        assert await AuthService(db).generate_reset_token("nobody@example.com") is None

    async def test_change_password_checks_current(self, db, owner):
        service = AuthService(db)
        user = await service.require_user(owner.user.id)

        with pytest.raises(AuthenticationError):
            await service.change_password(user, "Wrong12345", "NewPassword456")

        await service.change_password(user, PASSWORD, "NewPassword456")
        await service.authenticate_user(owner.user.email, "NewPassword456")


class TestTokens:

    def test_access_token_round_trip(self):
        token = AuthService.create_access_token({"sub": "5", "role": "landOfficer"})
        payload = AuthService.decode_token(token)
        assert payload["sub"] == "5"
        assert payload["role"] == "landOfficer"
        assert payload["type"] == "access"

    def test_expired_token_rejected(self):
        token = AuthService.create_access_token({"sub": "5"}, expires_delta=timedelta(seconds=-1))
        with pytest.raises(AuthenticationError):
            AuthService.decode_token(token)

    def test_refresh_token_type(self):
        payload = AuthService.decode_token(AuthService.create_refresh_token({"sub": "5"}))
        assert payload["type"] == "refresh"

    async def test_refresh_endpoint_rejects_access_token(self, client, owner):
        token = AuthService.create_access_token({"sub": str(owner.user.id)})
        response = await client.post("/api/auth/refresh", params={"refresh_token": token})
        assert response.status_code == 401
