from dataclasses import dataclass
from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.permissions import ENROLLMENT_SUBMITTER_ROLES, Role
from app.core.security import JWTKeyError, decode_token
from app.db.session import get_db
from app.services.carriers.registry import build_default_registry
from app.services.enrollment_store import EnrollmentStore
from app.services.enrollment_submission import EnrollmentSubmissionService
from app.services.payment_secrets import PaymentSecretResolver
from app.services.vault import DatabaseVaultClient


@dataclass(slots=True)
class CurrentActor:
    id: UUID | None
    role: str


# Tokens are issued by the admin auth service; this service only verifies them.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login")


async def get_db_session(db: AsyncSession = Depends(get_db)) -> AsyncSession:
    return db


async def get_current_actor(token: str = Depends(oauth2_scheme)) -> CurrentActor:
    try:
        payload = decode_token(token, expected_type="access")
    except (ValueError, JWTKeyError) as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(exc),
        ) from exc
    subject = payload.get("sub")
    if not subject:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
    try:
        actor_id = UUID(str(subject))
    except ValueError:
        actor_id = None
    return CurrentActor(id=actor_id, role=str(payload.get("role") or ""))


def require_roles(*roles: Role | str):
    allowed = {role.value if isinstance(role, Role) else str(role) for role in roles}

    async def dependency(actor: CurrentActor = Depends(get_current_actor)) -> CurrentActor:
        if actor.role not in allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient role for this operation",
            )
        return actor

    return dependency


require_enrollment_submitter = require_roles(*ENROLLMENT_SUBMITTER_ROLES)


async def get_enrollment_store(db: AsyncSession = Depends(get_db_session)) -> EnrollmentStore:
    return EnrollmentStore(db)


async def get_submission_service(
    db: AsyncSession = Depends(get_db_session),
) -> EnrollmentSubmissionService:
    store = EnrollmentStore(db)
    resolver = PaymentSecretResolver(store, DatabaseVaultClient(db))
    return EnrollmentSubmissionService(store, resolver, build_default_registry())
