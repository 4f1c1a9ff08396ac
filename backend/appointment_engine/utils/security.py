"""Caller identity and permission predicates.

Tokens are issued by the tenant identity service. The engine only decodes them
into an ``ActorContext`` that is passed explicitly into every command.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import FrozenSet, Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from appointment_engine.config import settings

# HTTP Bearer security
security = HTTPBearer()


class Role(str, Enum):
    SUPERADMIN = "superadmin"
    ADMIN = "admin"
    STAFF = "staff"


@dataclass(frozen=True)
class ActorContext:
    """Who is issuing a command."""

    user_id: Optional[int]
    roles: FrozenSet[Role] = field(default_factory=frozenset)
    team_id: Optional[int] = None
    name: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        """Admins and superadmins share every administrative permission."""
        return Role.ADMIN in self.roles or Role.SUPERADMIN in self.roles

    @property
    def is_superadmin(self) -> bool:
        return Role.SUPERADMIN in self.roles

    @property
    def is_staff(self) -> bool:
        return Role.STAFF in self.roles

    def is_assigned_to(self, team_id: Optional[int]) -> bool:
        return team_id is not None and self.team_id == team_id

    @classmethod
    def system(cls) -> "ActorContext":
        return cls(user_id=None, roles=frozenset(), name="System")


def _parse_roles(raw) -> FrozenSet[Role]:
    if isinstance(raw, str):
        raw = [raw]
    roles = set()
    for value in raw or []:
        try:
            roles.add(Role(value))
        except ValueError:
            continue
    return frozenset(roles)


def decode_actor_token(token: str) -> Optional[ActorContext]:
    """Decode a bearer token into an actor, or ``None`` if it is invalid."""
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError:
        return None

    sub = payload.get("sub")
    if sub is None:
        return None

    try:
        user_id = int(sub)
        team_id = payload.get("team_id")
        team_id = int(team_id) if team_id is not None else None
    except (TypeError, ValueError):
        return None

    return ActorContext(
        user_id=user_id,
        roles=_parse_roles(payload.get("roles") or payload.get("role")),
        team_id=team_id,
        name=payload.get("name"),
    )


async def get_current_actor(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> ActorContext:
    """Resolve the calling actor from the bearer token."""
    actor = decode_actor_token(credentials.credentials)
    if actor is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return actor
