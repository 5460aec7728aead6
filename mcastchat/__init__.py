"""mcastchat – text chat over a single IPv4 multicast group.

Importing this package exposes :class:`mcastchat.MulticastTransport` (the
queue bridge over one multicast connection) and its building blocks, so the
transport can be embedded in another application or launched via
``python -m mcastchat``.
"""

# ------------------------ re-exports ------------------------
from .config import TransportConfig                 # noqa: F401
from .connection import MulticastConnection         # noqa: F401
from .errors import (                               # noqa: F401
    ControlConfigFailed, GroupJoinFailed, InterfaceLookupFailed, LoopError,
    MulticastError, ReadFailed, SetupError, SocketBindFailed, TransportClosed, WriteFailed,
)
from .interfaces import Interface, list_multicast_interfaces, lookup_interface  # noqa: F401
from .protocol import Message, same_address         # noqa: F401
from .transport import MulticastTransport           # noqa: F401

# ------------------------ public API ------------------------
__all__: list[str] = [
    "MulticastTransport",
    "MulticastConnection",
    "TransportConfig",
    "Message",
    "same_address",
    "Interface",
    "list_multicast_interfaces",
    "lookup_interface",
    "MulticastError",
    "SetupError",
    "InterfaceLookupFailed",
    "SocketBindFailed",
    "GroupJoinFailed",
    "ControlConfigFailed",
    "LoopError",
    "ReadFailed",
    "WriteFailed",
    "TransportClosed",
]
