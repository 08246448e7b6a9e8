"""Shared FastAPI dependencies: collaborators and authorization gates"""

from collections.abc import Awaitable, Callable
from functools import lru_cache

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from etuition.db.database import get_db
from etuition.db.models import User
from etuition.services.authorization import Operation, authorize
from etuition.services.identity import (
    FirebaseIdentityVerifier,
    IdentityResolver,
    IdentityVerifier,
    VerifiedIdentity,
    parse_bearer_token,
)
from etuition.services.payment_gateway import PaymentGateway, StripeCheckoutGateway


@lru_cache
def get_identity_verifier() -> IdentityVerifier:
    return FirebaseIdentityVerifier()


@lru_cache
def get_payment_gateway() -> PaymentGateway:
    return StripeCheckoutGateway()


async def get_current_identity(
    authorization: str | None = Header(None),
    verifier: IdentityVerifier = Depends(get_identity_verifier),
) -> VerifiedIdentity:
    """Verify the bearer credential; 401 when missing or invalid"""
    token = parse_bearer_token(authorization)
    return await verifier.verify(token)


async def get_current_user(
    identity: VerifiedIdentity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Resolve the caller's user record; 403 when none exists"""
    return await IdentityResolver(db).resolve_user(identity)


def require(operation: Operation) -> Callable[..., Awaitable[User]]:
    """Dependency that passes the caller through only if the role gate allows it"""

    async def gate(user: User = Depends(get_current_user)) -> User:
        return authorize(user, operation)

    gate.__name__ = f"require_{operation.value}"
    return gate
