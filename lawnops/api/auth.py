"""
Operator auth - JWT Bearer tokens identifying a user of one business.
Tokens are issued by the operator dashboard; this service only verifies them.
"""
import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession

from lawnops.config import get_settings
from lawnops.database import get_db
from lawnops.models.user import User

logger = logging.getLogger(__name__)
bearer_scheme = HTTPBearer()

JWT_ALGORITHM = "HS256"


def _jwt_secret() -> str:
    settings = get_settings()
    return settings.dashboard_jwt_secret or settings.app_secret_key


def create_access_token(user: User, expires_in: Optional[timedelta] = None) -> str:
    """Sign a token for a user. Used by the seed script and tests."""
    settings = get_settings()
    now = datetime.now(timezone.utc)
    expires_in = expires_in or timedelta(hours=settings.dashboard_jwt_expiry_hours)
    return jwt.encode(
        {
            "user_id": str(user.id),
            "business_id": str(user.business_id),
            "role": user.role,
            "iat": now,
            "exp": now + expires_in,
        },
        _jwt_secret(),
        algorithm=JWT_ALGORITHM,
    )


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Dependency to extract and verify the operator from a JWT Bearer token."""
    try:
        payload = jwt.decode(credentials.credentials, _jwt_secret(), algorithms=[JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token")

    user_id = payload.get("user_id")
    if not user_id:
        raise HTTPException(status_code=401, detail="Invalid token payload")

    try:
        user_uuid = uuid.UUID(user_id)
    except (ValueError, AttributeError):
        raise HTTPException(status_code=401, detail="Invalid token payload")

    result = await db.execute(
        select(User).where(and_(User.id == user_uuid, User.is_active == True))  # noqa: E712
    )
    user = result.scalar_one_or_none()
    if not user:
        raise HTTPException(status_code=401, detail="User not found")
    return user
