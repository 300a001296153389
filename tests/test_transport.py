import os
import threading

import pytest

from hybridchat.common.errors import EndOfStream, FrameTooLarge, TransportError
from hybridchat.common.protocol import FRAME_HEADER
from hybridchat.common.transport import FramedTransport


@pytest.mark.parametrize("chunk", [1, 3, 7, 1024])
def test_frame_survives_small_chunks(chunked_stream, chunk):
    stream = chunked_stream(chunk=chunk)
    transport = FramedTransport(stream)
    payload = os.urandom(997)

    transport.send_frame(payload)

    assert transport.receive_frame() == payload


def test_five_megabytes_over_one_kilobyte_stream(chunked_stream):
    stream = chunked_stream(chunk=1024)
    transport = FramedTransport(stream)
    payload = os.urandom(5 * 1024 * 1024)

    transport.send_frame(payload)
    received = transport.receive_frame()

    assert received == payload
    # Every underlying call moved at most 1 KB
    assert stream.send_calls >= len(payload) // 1024
    assert stream.recv_calls >= len(payload) // 1024


def test_frames_keep_their_boundaries(chunked_stream):
    transport = FramedTransport(chunked_stream(chunk=5))
    payloads = [b"first", b"", b"third frame", b"\x00" * 40]
    for p in payloads:
        transport.send_frame(p)

    assert [transport.receive_frame() for _ in payloads] == payloads


def test_header_is_big_endian_uint32(chunked_stream):
    stream = chunked_stream()
    FramedTransport(stream).send_frame(b"abc")
    assert bytes(stream.buffer) == b"\x00\x00\x00\x03abc"


def test_receive_exact_reports_partial_data_on_close(chunked_stream):
    transport = FramedTransport(chunked_stream(data=b"abc"))
    with pytest.raises(EndOfStream) as excinfo:
        transport.receive_exact(5)
    assert excinfo.value.partial == b"abc"


def test_clean_close_between_frames(chunked_stream):
    transport = FramedTransport(chunked_stream())
    with pytest.raises(EndOfStream) as excinfo:
        transport.receive_frame()
    assert excinfo.value.partial == b""


def test_close_inside_header_is_a_transport_error(chunked_stream):
    transport = FramedTransport(chunked_stream(data=b"\x00\x00"))
    with pytest.raises(TransportError) as excinfo:
        transport.receive_frame()
    assert not isinstance(excinfo.value, EndOfStream)


def test_close_inside_payload_is_a_transport_error(chunked_stream):
    data = FRAME_HEADER.pack(100) + b"x" * 10
    transport = FramedTransport(chunked_stream(data=data))
    with pytest.raises(TransportError) as excinfo:
        transport.receive_frame()
    assert not isinstance(excinfo.value, EndOfStream)


def test_oversized_length_is_rejected_before_reading_payload(chunked_stream):
    stream = chunked_stream(data=FRAME_HEADER.pack(0xFFFFFFFF) + b"payload bytes")
    transport = FramedTransport(stream, max_frame_size=1024)

    with pytest.raises(FrameTooLarge):
        transport.receive_frame()
    # Only the header was consumed
    assert stream.pos == FRAME_HEADER.size


def test_refuses_to_send_oversized_frame(chunked_stream):
    stream = chunked_stream()
    transport = FramedTransport(stream, max_frame_size=10)
    with pytest.raises(TransportError):
        transport.send_frame(b"x" * 11)
    assert stream.buffer == b""


class _StalledStream:
    def send(self, data):
        return 0

    def recv(self, n):
        raise ConnectionResetError("reset by peer")


def test_send_that_makes_no_progress_fails():
    with pytest.raises(TransportError):
        FramedTransport(_StalledStream()).send_exact(b"data")


def test_socket_errors_become_transport_errors():
    with pytest.raises(TransportError) as excinfo:
        FramedTransport(_StalledStream()).receive_exact(4)
    assert isinstance(excinfo.value.__cause__, ConnectionResetError)


def test_close_is_idempotent(chunked_stream):
    stream = chunked_stream()
    transport = FramedTransport(stream)
    transport.close()
    transport.close()
    assert transport.closed
    assert stream.closed


def test_close_wakes_a_blocked_receiver(socket_pair, spawn):
    a, _ = socket_pair
    transport = FramedTransport(a)
    thread, box = spawn(transport.receive_frame)

    transport.close()
    thread.join(2)

    assert not thread.is_alive()
    assert isinstance(box.get("error"), EndOfStream)


def test_concurrent_writers_do_not_interleave(chunked_stream):
    transport = FramedTransport(chunked_stream(chunk=7))
    a_payload, b_payload = b"A" * 300, b"B" * 500

    def writer(payload):
        for _ in range(50):
            transport.send_frame(payload)

    threads = [threading.Thread(target=writer, args=(p,)) for p in (a_payload, b_payload)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    frames = [transport.receive_frame() for _ in range(100)]
    assert frames.count(a_payload) == 50
    assert frames.count(b_payload) == 50
