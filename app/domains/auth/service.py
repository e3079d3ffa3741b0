from fastapi import HTTPException

from app.core.exceptions import AuthorizationError
from app.shared.utils.security import decode_token

from .entities import Actor, Role


def actor_from_claims(payload: dict) -> Actor:
    subject = payload.get("sub")
    if not subject:
        raise HTTPException(status_code=401, detail="Invalid token")
    roles = set()
    for raw in payload.get("roles") or []:
        try:
            roles.add(Role(raw))
        except ValueError:
            # roles unknown to the moderation engine carry no capability
            continue
    return Actor(id=str(subject), roles=frozenset(roles))


async def validate_token(token: str) -> Actor:
    """Валидация JWT токена и получение актора"""
    payload = decode_token(token)
    if payload is None:
        raise HTTPException(status_code=401, detail="Invalid token")
    return actor_from_claims(payload)


def require_role(actor: Actor, *roles: Role) -> None:
    """Capability check run before a service method opens its transaction."""
    if not actor.has_any(*roles):
        wanted = ", ".join(r.value for r in roles)
        raise AuthorizationError(f"Actor {actor.id} lacks required role ({wanted})")
