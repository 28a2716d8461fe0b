"""
FastAPI dependency injection wiring.

Each dependency function returns a fully-constructed object taken from the
process-wide container, keeping the route handlers thin.
"""
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from classifieds.api.container import ServiceContainer
from classifieds.application.interfaces.auth_provider import AuthenticationError
from classifieds.application.interfaces.persistence_gateway import PersistenceGateway
from classifieds.application.services.notification_dispatcher import NotificationDispatcher
from classifieds.application.use_cases.get_user_profile import GetUserProfile
from classifieds.application.use_cases.listing_lifecycle import ListingLifecycle
from classifieds.domain.entities.actor import Actor
from classifieds.infrastructure.scheduling.sweep_scheduler import SweepScheduler

_bearer = HTTPBearer(auto_error=False)


# ---- Container -------------------------------------------------------------

def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container


def get_gateway(container: ServiceContainer = Depends(get_container)) -> PersistenceGateway:
    return container.gateway


def get_lifecycle(container: ServiceContainer = Depends(get_container)) -> ListingLifecycle:
    return container.lifecycle


def get_dispatcher(container: ServiceContainer = Depends(get_container)) -> NotificationDispatcher:
    return container.dispatcher


def get_profiles(container: ServiceContainer = Depends(get_container)) -> GetUserProfile:
    return container.profiles


def get_scheduler(container: ServiceContainer = Depends(get_container)) -> SweepScheduler:
    return container.scheduler


# ---- Auth ------------------------------------------------------------------

async def get_optional_actor(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer),
    container: ServiceContainer = Depends(get_container),
) -> Actor | None:
    """Anonymous callers get None; a presented but invalid token is still a 401."""
    if credentials is None:
        return None
    try:
        return await container.auth_provider.authenticate(credentials.credentials)
    except AuthenticationError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(exc),
            headers={"WWW-Authenticate": "Bearer"},
        ) from exc


async def get_current_actor(actor: Actor | None = Depends(get_optional_actor)) -> Actor:
    if actor is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return actor


async def require_moderator(actor: Actor = Depends(get_current_actor)) -> Actor:
    if not actor.is_moderator:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Moderator access required")
    return actor
