import errno
import queue
import socket
import threading
import time

import pytest

from mcastchat.transport import MulticastTransport

GROUP = "224.0.0.250"


class FakeGroup:
    """In-memory multicast hub: a send reaches every member, sender included."""

    def __init__(self, group=GROUP):
        self.group = group
        self.members = []

    def deliver(self, payload, sender):
        for member in list(self.members):
            member.incoming.put((payload, sender, self.group))


class FakeConnection:
    """Stands in for MulticastConnection.

    ``incoming`` items are either ``(payload, sender, destination)`` tuples or
    exception instances, returned/raised by ``receive()`` in order.  An empty
    queue behaves like a read deadline passing.
    """

    def __init__(self, local_address=("10.0.0.5", 40000), group=GROUP,
                 filter_destination=True, hub=None, fail_send_at=None):
        self.local_address = local_address
        self.group = group
        self.filter_destination = filter_destination
        self.incoming = queue.Queue()
        self.sent = []                 # Every attempted payload, failing one included
        self.reads = 0
        self.close_calls = 0
        self.fail_send_at = fail_send_at
        self.hub = hub
        self._closed = threading.Event()
        if hub is not None:
            hub.members.append(self)

    @property
    def closed(self):
        return self._closed.is_set()

    def feed(self, *items):
        for item in items:
            self.incoming.put(item)

    def receive(self, timeout):
        if self.closed:
            raise OSError(errno.EBADF, "Bad file descriptor")
        self.reads += 1
        try:
            item = self.incoming.get(timeout=0.02)
        except queue.Empty:
            if self.closed:
                raise OSError(errno.EBADF, "Bad file descriptor")
            raise socket.timeout("timed out")
        if isinstance(item, BaseException):
            raise item
        return item

    def send(self, payload):
        if self.closed:
            raise OSError(errno.EBADF, "Bad file descriptor")
        self.sent.append(payload)
        if self.fail_send_at is not None and len(self.sent) - 1 == self.fail_send_at:
            raise OSError(errno.ENETUNREACH, "Network is unreachable")
        if self.hub is not None:
            self.hub.deliver(payload, self.local_address)

    def close(self):
        self.close_calls += 1
        self._closed.set()


class GatedConnection(FakeConnection):
    """send() holds until ``gate`` is set, so the outbound queue backs up."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.gate = threading.Event()
        self.sending = threading.Event()

    def send(self, payload):
        self.sending.set()
        self.gate.wait(2.0)
        super().send(payload)


def wait_for(predicate, timeout=2.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.005)
    return predicate()


@pytest.fixture
def make_transport():
    started = []

    def _make(conn, **kwargs):
        kwargs.setdefault("poll_interval", 0.02)
        t = MulticastTransport(conn, **kwargs)
        started.append(t)
        return t

    yield _make
    for t in started:
        t.stop(timeout=1.0)


@pytest.fixture(autouse=True)
def reset_logging():
    from mcastchat.util import LOG
    level = LOG.level
    yield
    for handler in list(LOG.handlers):
        LOG.removeHandler(handler)
        handler.close()
    LOG.setLevel(level)
