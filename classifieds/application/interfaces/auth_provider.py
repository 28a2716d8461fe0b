from abc import ABC, abstractmethod

from classifieds.domain.entities.actor import Actor


class AuthenticationError(Exception):
    """The presented credential is missing, malformed, expired or forged."""


class AuthProvider(ABC):
    """Port resolving a bearer credential to the acting user."""

    @abstractmethod
    async def authenticate(self, token: str) -> Actor:
        """Raises AuthenticationError when the token cannot be trusted."""
        ...
