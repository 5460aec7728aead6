import errno
import logging
import socket
import threading
import time

import pytest

from mcastchat.errors import ReadFailed, TransportClosed, WriteFailed
from mcastchat.protocol import Message

from conftest import GROUP, FakeConnection, FakeGroup, GatedConnection, wait_for

PEER = ("10.0.0.9", 41000)


def test_received_datagrams_reach_inbound_in_order(make_transport):
    conn = FakeConnection()
    conn.feed(*[(f"m{i}".encode(), PEER, GROUP) for i in range(5)])
    t = make_transport(conn).start()

    texts = [t.inbound.get(timeout=1.0).text for _ in range(5)]
    assert texts == ["m0", "m1", "m2", "m3", "m4"]


def test_message_carries_sender_address(make_transport):
    conn = FakeConnection()
    conn.feed((b"hi", PEER, GROUP))
    t = make_transport(conn).start()

    msg = t.inbound.get(timeout=1.0)
    assert isinstance(msg, Message)
    assert msg.sender == PEER
    assert msg.text == "hi"


def test_read_timeout_is_not_fatal(make_transport, caplog):
    caplog.set_level(logging.DEBUG, logger="mcastchat")
    conn = FakeConnection()
    conn.feed(socket.timeout("timed out"), socket.timeout("timed out"), (b"after", PEER, GROUP))
    t = make_transport(conn).start()

    assert t.inbound.get(timeout=1.0).text == "after"
    assert not t.receiver.done()
    assert t.running.is_set()
    assert "timed out" in caplog.text


def test_read_error_ends_receive_loop_once(make_transport):
    conn = FakeConnection()
    conn.feed(OSError(errno.ECONNRESET, "Connection reset by peer"), (b"never", PEER, GROUP))
    t = make_transport(conn).start()

    assert wait_for(t.receiver.done)
    assert isinstance(t.receiver.exception(), ReadFailed)
    time.sleep(0.1)
    assert conn.reads == 1
    assert t.inbound.empty()

    with pytest.raises(ReadFailed):
        t.wait(timeout=1.0)


def test_read_error_stops_transmit_loop_too(make_transport):
    conn = FakeConnection()
    conn.feed(OSError(errno.ENETDOWN, "Network is down"))
    t = make_transport(conn).start()

    assert wait_for(lambda: t.transmitter.done() and t.receiver.done())
    assert t.transmitter.exception() is None
    assert not t.running.is_set()
    assert conn.closed


def test_write_error_sends_fifo_up_to_failure_only(make_transport):
    conn = FakeConnection(fail_send_at=2)
    t = make_transport(conn)
    for text in ("0", "1", "2", "3", "4"):
        t.send(text)
    t.start()

    with pytest.raises(WriteFailed):
        t.wait(timeout=2.0)
    assert conn.sent == [b"0", b"1", b"2"]
    assert t.receiver.exception() is None
    time.sleep(0.1)
    assert conn.sent == [b"0", b"1", b"2"]


def test_destination_filter_drops_foreign_packets(make_transport):
    conn = FakeConnection()
    conn.feed((b"other", PEER, "224.0.0.1"), (b"none", PEER, None), (b"ours", PEER, GROUP))
    t = make_transport(conn).start()

    assert t.inbound.get(timeout=1.0).text == "ours"
    time.sleep(0.05)
    assert t.inbound.empty()


def test_without_destination_filter_everything_is_delivered(make_transport):
    conn = FakeConnection(filter_destination=False)
    conn.feed((b"other", PEER, "224.0.0.1"), (b"ours", PEER, None))
    t = make_transport(conn).start()

    assert [t.inbound.get(timeout=1.0).text for _ in range(2)] == ["other", "ours"]


def test_invalid_utf8_is_replaced(make_transport):
    conn = FakeConnection()
    conn.feed((b"caf\xc3", PEER, GROUP))
    t = make_transport(conn).start()

    assert t.inbound.get(timeout=1.0).text == "caf\ufffd"


def test_stop_is_clean_and_repeatable(make_transport):
    conn = FakeConnection()
    t = make_transport(conn).start()
    t.stop(timeout=1.0)
    t.stop(timeout=1.0)

    assert conn.closed
    assert t.wait(timeout=1.0) is True
    assert t.receiver.exception() is None
    assert t.transmitter.exception() is None


def test_start_twice_is_rejected(make_transport):
    t = make_transport(FakeConnection()).start()
    with pytest.raises(RuntimeError):
        t.start()


def test_context_manager_stops_transport(make_transport):
    conn = FakeConnection()
    with make_transport(conn) as t:
        assert t.running.is_set()
    assert not t.running.is_set()
    assert conn.closed


def test_bounded_inbound_blocks_receive_until_drained(make_transport):
    conn = FakeConnection()
    conn.feed(*[(str(i).encode(), PEER, GROUP) for i in range(4)])
    t = make_transport(conn, queue_size=2).start()

    assert wait_for(t.inbound.full)
    time.sleep(0.05)
    assert t.inbound.qsize() == 2
    assert [t.inbound.get(timeout=1.0).text for _ in range(4)] == ["0", "1", "2", "3"]


def test_own_echo_matches_local_address(make_transport):
    hub = FakeGroup()
    a = make_transport(FakeConnection(("10.0.0.5", 40000), hub=hub)).start()
    b = make_transport(FakeConnection(("10.0.0.6", 40001), hub=hub)).start()

    a.send("hello")

    at_b = b.inbound.get(timeout=1.0)
    at_a = a.inbound.get(timeout=1.0)
    assert (at_b.sender, at_b.text) == (a.local_address, "hello")
    assert (at_a.sender, at_a.text) == (a.local_address, "hello")
    assert at_a.is_from(a.local_address)
    assert not at_a.is_from(b.local_address)


def test_numbered_stream_arrives_in_order_with_rising_timestamps(make_transport):
    hub = FakeGroup()
    t = make_transport(FakeConnection(hub=hub)).start()

    for i in range(3):
        t.send(str(i))
        time.sleep(0.1)

    got = [t.inbound.get(timeout=1.0) for _ in range(3)]
    assert [m.text for m in got] == ["0", "1", "2"]
    stamps = [m.received_at for m in got]
    assert stamps == sorted(stamps)


def test_large_and_multibyte_messages_arrive_whole(make_transport):
    hub = FakeGroup()
    a = make_transport(FakeConnection(("10.0.0.5", 40000), hub=hub)).start()
    b = make_transport(FakeConnection(("10.0.0.6", 40001), hub=hub)).start()
    long_text = "x" * 1500
    wide_text = "é✓" * 500                 # 2500 bytes of UTF-8

    a.send(long_text)
    a.send(wide_text)

    assert [b.inbound.get(timeout=1.0).text for _ in range(2)] == [long_text, wide_text]


def test_oversize_send_is_rejected_before_queueing(make_transport):
    t = make_transport(FakeConnection()).start()

    with pytest.raises(ValueError):
        t.send("x" * 70000)
    assert t.outbound.empty()


def test_send_after_fatal_error_raises(make_transport):
    conn = FakeConnection()
    conn.feed(OSError(errno.ENETDOWN, "Network is down"))
    t = make_transport(conn).start()
    assert wait_for(lambda: t.receiver.done() and t.transmitter.done())

    with pytest.raises(TransportClosed):
        t.send("late")
    assert t.outbound.empty()


def test_blocked_send_on_full_queue_fails_when_transport_dies(make_transport):
    conn = GatedConnection()
    t = make_transport(conn, queue_size=1).start()
    t.send("a")
    assert wait_for(conn.sending.is_set)         # Transmit loop holds "a"
    t.send("b")                                  # Queue now full

    outcome = []

    def blocked_send():
        try:
            t.send("c")
        except TransportClosed as exc:
            outcome.append(exc)

    producer = threading.Thread(target=blocked_send, daemon=True)
    producer.start()
    time.sleep(0.05)
    assert producer.is_alive()

    conn.feed(OSError(errno.ENETDOWN, "Network is down"))
    producer.join(timeout=1.0)
    conn.gate.set()

    assert not producer.is_alive()
    assert len(outcome) == 1 and isinstance(outcome[0], TransportClosed)
    with pytest.raises(ReadFailed):
        t.wait(timeout=1.0)


def test_unexpected_receive_crash_becomes_read_failed(make_transport):
    conn = FakeConnection()
    conn.feed(ValueError("boom"))
    t = make_transport(conn).start()

    with pytest.raises(ReadFailed) as info:
        t.wait(timeout=1.0)
    assert isinstance(info.value.__cause__, ValueError)
    assert not t.running.is_set()
    assert conn.closed


class CrashingConnection(FakeConnection):
    def send(self, payload):
        raise RuntimeError("driver bug")


def test_unexpected_send_crash_becomes_write_failed(make_transport):
    conn = CrashingConnection()
    t = make_transport(conn).start()
    t.send("x")

    with pytest.raises(WriteFailed) as info:
        t.wait(timeout=1.0)
    assert isinstance(info.value.__cause__, RuntimeError)
    assert wait_for(t.receiver.done)
    assert t.receiver.exception() is None
