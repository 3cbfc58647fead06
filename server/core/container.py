"""Dependency injection container for the application."""

from dependency_injector import containers, providers

from core.config import Settings
from services.signaling.registry import PeerRegistry
from services.signaling.sessions import SessionStore
from services.signaling.router import MessageRouter
from services.signaling.relay import RelayService


class Container(containers.DeclarativeContainer):
    """Application dependency injection container."""

    # Settings
    settings = providers.Singleton(
        Settings,
    )

    # Relay state, owned by the relay service for the process lifetime
    peer_registry = providers.Singleton(
        PeerRegistry
    )

    session_store = providers.Singleton(
        SessionStore
    )

    message_router = providers.Singleton(
        MessageRouter,
        registry=peer_registry,
        sessions=session_store
    )

    relay_service = providers.Singleton(
        RelayService,
        registry=peer_registry,
        sessions=session_store,
        router=message_router,
        outbound_queue_size=settings.provided.outbound_queue_size
    )


# Global container instance
container = Container()


def reset_relay_state() -> None:
    """Drop relay singletons so the next access starts from empty state."""
    container.relay_service.reset()
    container.message_router.reset()
    container.session_store.reset()
    container.peer_registry.reset()
