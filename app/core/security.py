from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import StrEnum

from jose import JWTError, jwt

from app.core.config import settings


class Role(StrEnum):
    ADMIN = "admin"
    PROVIDER = "provider"
    CUSTOMER = "customer"


# Role names used by older identity-provider metadata
_LEGACY_ROLES = {"barber": Role.PROVIDER, "user": Role.CUSTOMER}


def parse_role(value: str | None) -> Role:
    if not value:
        return Role.CUSTOMER
    value = value.strip().lower()
    if value in _LEGACY_ROLES:
        return _LEGACY_ROLES[value]
    try:
        return Role(value)
    except ValueError:
        return Role.CUSTOMER


@dataclass(frozen=True)
class Principal:
    """Verified (user id, role) pair handed to the core by the identity layer."""

    user_id: str
    role: Role

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    @property
    def is_provider(self) -> bool:
        # Admins can do everything providers can
        return self.role in (Role.PROVIDER, Role.ADMIN)


def create_access_token(subject: str, role: Role | str = Role.CUSTOMER) -> str:
    expire = datetime.now(UTC) + timedelta(minutes=settings.access_token_expire_minutes)
    to_encode = {"sub": str(subject), "exp": expire, "role": str(role)}
    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)


def decode_access_token(token: str) -> Principal | None:
    try:
        payload = jwt.decode(
            token, settings.secret_key, algorithms=[settings.algorithm]
        )
    except JWTError:
        return None
    sub = payload.get("sub")
    if not sub:
        return None
    role = payload.get("role")
    if role is None:
        metadata = payload.get("metadata") or {}
        if isinstance(metadata, dict):
            role = metadata.get("role")
    return Principal(user_id=str(sub), role=parse_role(role))
