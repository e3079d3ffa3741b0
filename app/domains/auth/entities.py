from dataclasses import dataclass, field
from enum import Enum
from typing import FrozenSet


class Role(str, Enum):
    ADMIN = "admin"
    MODERATOR = "moderator"
    SUPERVISOR = "supervisor"
    SYSTEM = "system"


class ActorType(str, Enum):
    USER = "user"
    MODERATOR = "moderator"
    SYSTEM = "system"


@dataclass(frozen=True)
class Actor:
    """Identity supplied by the auth provider: subject id plus role claims."""

    id: str
    roles: FrozenSet[Role] = field(default_factory=frozenset)

    def has_any(self, *roles: Role) -> bool:
        # admins can do everything a moderator or supervisor can
        return Role.ADMIN in self.roles or any(r in self.roles for r in roles)

    @property
    def actor_type(self) -> ActorType:
        if Role.SYSTEM in self.roles:
            return ActorType.SYSTEM
        if self.roles & {Role.ADMIN, Role.MODERATOR, Role.SUPERVISOR}:
            return ActorType.MODERATOR
        return ActorType.USER


SYSTEM_ACTOR = Actor(id="system", roles=frozenset({Role.SYSTEM}))
