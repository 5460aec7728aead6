"""Exception hierarchy for the multicast transport.

Setup errors (:class:`SetupError` subclasses) are raised by
:meth:`mcastchat.connection.MulticastConnection.open` and abort startup.
Loop errors (:class:`LoopError` subclasses) end a single transport loop and
are reported through that loop's future. A read timeout is not an error and
has no class here.
"""

from __future__ import annotations


class MulticastError(Exception):
    """Base class for everything raised by :mod:`mcastchat`."""


class SetupError(MulticastError):
    pass


class InterfaceLookupFailed(SetupError):
    pass


class SocketBindFailed(SetupError):
    pass


class GroupJoinFailed(SetupError):
    pass


class ControlConfigFailed(SetupError):
    pass


class LoopError(MulticastError):
    pass


class ReadFailed(LoopError):
    pass


class WriteFailed(LoopError):
    pass


class TransportClosed(MulticastError):
    """send() on a transport whose loops have stopped."""
