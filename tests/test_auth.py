"""
Tests for lawnops/api/auth.py - operator JWT verification.
"""
import uuid
from datetime import datetime, timedelta, timezone

import jwt
import pytest
from fastapi import HTTPException
from fastapi.security import HTTPAuthorizationCredentials

from factories import add_business, add_user
from lawnops.api.auth import JWT_ALGORITHM, _jwt_secret, create_access_token, get_current_user


def _bearer(token: str) -> HTTPAuthorizationCredentials:
    return HTTPAuthorizationCredentials(scheme="Bearer", credentials=token)


class TestCreateAccessToken:
    async def test_claims(self, db):
        await add_business(db)
        user = await add_user(db, role="crew_lead")

        payload = jwt.decode(create_access_token(user), _jwt_secret(), algorithms=[JWT_ALGORITHM])

        assert payload["user_id"] == str(user.id)
        assert payload["business_id"] == str(user.business_id)
        assert payload["role"] == "crew_lead"
        assert payload["exp"] - payload["iat"] == 24 * 3600


class TestGetCurrentUser:
    async def test_valid_token(self, db):
        await add_business(db)
        user = await add_user(db)

        current = await get_current_user(_bearer(create_access_token(user)), db)

        assert current.id == user.id

    async def test_expired(self, db):
        user = await add_user(db)
        token = create_access_token(user, expires_in=timedelta(seconds=-10))

        with pytest.raises(HTTPException) as exc:
            await get_current_user(_bearer(token), db)
        assert exc.value.status_code == 401
        assert exc.value.detail == "Token expired"

    async def test_wrong_secret(self, db):
        user = await add_user(db)
        token = jwt.encode(
            {"user_id": str(user.id), "exp": datetime.now(timezone.utc) + timedelta(hours=1)},
            "some_other_secret_that_is_long_enough_0123",
            algorithm=JWT_ALGORITHM,
        )

        with pytest.raises(HTTPException) as exc:
            await get_current_user(_bearer(token), db)
        assert exc.value.detail == "Invalid token"

    async def test_garbage(self, db):
        with pytest.raises(HTTPException) as exc:
            await get_current_user(_bearer("not.a.jwt"), db)
        assert exc.value.status_code == 401

    @pytest.mark.parametrize("user_id", [None, "not-a-uuid"])
    async def test_bad_payload(self, db, user_id):
        claims = {"exp": datetime.now(timezone.utc) + timedelta(hours=1)}
        if user_id:
            claims["user_id"] = user_id
        token = jwt.encode(claims, _jwt_secret(), algorithm=JWT_ALGORITHM)

        with pytest.raises(HTTPException) as exc:
            await get_current_user(_bearer(token), db)
        assert exc.value.detail == "Invalid token payload"

    async def test_inactive_user(self, db):
        user = await add_user(db, is_active=False)

        with pytest.raises(HTTPException) as exc:
            await get_current_user(_bearer(create_access_token(user)), db)
        assert exc.value.detail == "User not found"

    async def test_unknown_user(self, db):
        claims = {"user_id": str(uuid.uuid4()), "exp": datetime.now(timezone.utc) + timedelta(hours=1)}
        token = jwt.encode(claims, _jwt_secret(), algorithm=JWT_ALGORITHM)

        with pytest.raises(HTTPException) as exc:
            await get_current_user(_bearer(token), db)
        assert exc.value.detail == "User not found"
