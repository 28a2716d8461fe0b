from enum import Enum


class ActorRole(str, Enum):
    USER = "user"
    MODERATOR = "moderator"

    @classmethod
    def from_claim(cls, value: str | None) -> "ActorRole":
        """Map a token role claim onto a role; legacy ``admin`` claims are moderators."""
        if value in ("moderator", "admin"):
            return cls.MODERATOR
        return cls.USER
