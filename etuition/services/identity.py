"""Identity verification (Firebase ID tokens) and role resolution"""

import asyncio
import base64
import json
import logging
from dataclasses import dataclass
from typing import Protocol

import firebase_admin
from firebase_admin import auth, credentials
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from etuition.config import settings
from etuition.db.models import User, UserRole
from etuition.services.exceptions import Forbidden, NotFound, Unauthorized

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VerifiedIdentity:
    """Caller identity as asserted by the identity provider"""
    email: str
    subject_id: str


class IdentityVerifier(Protocol):
    async def verify(self, token: str) -> VerifiedIdentity: ...


class FirebaseIdentityVerifier:
    """Verifies Firebase ID tokens with the Admin SDK"""

    def __init__(self, app: firebase_admin.App | None = None):
        self._app = app

    def _get_app(self) -> firebase_admin.App:
        if self._app is not None:
            return self._app

        try:
            self._app = firebase_admin.get_app()
            return self._app
        except ValueError:
            pass

        if settings.firebase_credentials_base64:
            decoded = base64.b64decode(settings.firebase_credentials_base64).decode("utf-8")
            cred = credentials.Certificate(json.loads(decoded))
        elif settings.firebase_credentials:
            cred = credentials.Certificate(settings.firebase_credentials)
        else:
            logger.error("Firebase credentials not configured")
            raise Unauthorized()

        self._app = firebase_admin.initialize_app(cred)
        logger.info("Firebase Admin SDK initialized successfully")
        return self._app

    async def verify(self, token: str) -> VerifiedIdentity:
        app = self._get_app()
        try:
            decoded = await asyncio.to_thread(auth.verify_id_token, token, app)
        except (ValueError, auth.InvalidIdTokenError, auth.ExpiredIdTokenError,
                auth.RevokedIdTokenError, auth.CertificateFetchError) as e:
            logger.info(f"Token verification failed: {e}")
            raise Unauthorized()

        email = decoded.get("email")
        uid = decoded.get("uid")
        if not email or not uid:
            raise Unauthorized()
        return VerifiedIdentity(email=email.lower(), subject_id=uid)


def parse_bearer_token(authorization: str | None) -> str:
    """Extract the token from an `Authorization: Bearer <token>` header"""
    if not authorization:
        raise Unauthorized()
    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise Unauthorized()
    return parts[1]


class IdentityResolver:
    """Maps a verified caller to its user record and role"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_user_by_email(self, email: str) -> User | None:
        stmt = select(User).where(User.email == email.lower())
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def resolve_role(self, email: str) -> UserRole:
        user = await self.get_user_by_email(email)
        if not user:
            raise NotFound("User not found")
        return user.role

    async def resolve_user(self, identity: VerifiedIdentity) -> User:
        """Absent users cannot pass any role gate"""
        user = await self.get_user_by_email(identity.email)
        if not user:
            raise Forbidden()
        return user
