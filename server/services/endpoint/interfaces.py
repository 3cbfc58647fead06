"""Interfaces of the collaborators an endpoint drives but does not implement.

The local resource (screen capture), the direct peer-to-peer session and the
relay signaling channel are each independently failable. Callbacks are
assigned by the state machine and awaited by the collaborator.
"""

from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol

from services.signaling.protocol import SignalingMessage

AsyncCallback = Callable[..., Awaitable[None]]


class LocalResource(Protocol):
    """Screen capture the sender shares. Must be acquired before signaling."""

    on_ended: Optional[AsyncCallback]

    async def acquire(self) -> None:
        """Start capture. Raises if the user or platform refuses."""
        ...

    def release(self) -> None:
        """Stop capture. No-op if never acquired or already released."""
        ...


class DirectSession(Protocol):
    """Opaque peer-to-peer transport (native real-time media stack).

    Descriptions and candidates are opaque JSON values produced and
    consumed only by this object.
    """

    on_ice_candidate: Optional[AsyncCallback]          # (candidate)
    on_connection_state_change: Optional[AsyncCallback]  # (state: str)
    on_data: Optional[AsyncCallback]                   # (message: dict)

    def attach_local_resource(self, resource: LocalResource) -> None:
        ...

    def open_data_channel(self, label: str, ordered: bool = True) -> None:
        ...

    async def create_offer(self) -> Any:
        ...

    async def create_answer(self) -> Any:
        ...

    async def set_local_description(self, description: Any) -> None:
        ...

    async def set_remote_description(self, description: Any) -> None:
        ...

    async def add_ice_candidate(self, candidate: Any) -> None:
        ...

    async def get_stats(self) -> List[Dict[str, Any]]:
        ...

    def send_data(self, message: Dict[str, Any]) -> bool:
        """Send over the data channel. False when the channel is not open."""
        ...

    def close(self) -> None:
        ...


class SignalingChannel(Protocol):
    """Connection from an endpoint to the relay."""

    on_message: Optional[AsyncCallback]  # (message: SignalingMessage)
    on_close: Optional[AsyncCallback]    # ()

    async def connect(self) -> str:
        """Open the connection and return the peer id the relay assigned."""
        ...

    async def send(self, message: SignalingMessage) -> bool:
        ...

    def is_connected(self) -> bool:
        ...

    async def close(self) -> None:
        ...


DirectSessionFactory = Callable[[List[str]], DirectSession]
SignalingChannelFactory = Callable[[], SignalingChannel]
