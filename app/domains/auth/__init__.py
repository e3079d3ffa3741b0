from .entities import SYSTEM_ACTOR, Actor, ActorType, Role

__all__ = ["Actor", "ActorType", "Role", "SYSTEM_ACTOR"]
