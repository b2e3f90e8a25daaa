from __future__ import annotations

import msgpack
from conftest import ChunkReader

from markdown_composer.framing import (
    FrameDecoder,
    Malformed,
    Message,
    PeerClosed,
    encode_document,
)


def _decoder(*chunks: bytes) -> tuple[FrameDecoder, ChunkReader]:
    reader = ChunkReader(list(chunks))
    return FrameDecoder(reader), reader


def test_decodes_frames_in_wire_order_from_one_chunk() -> None:
    decoder, _ = _decoder(encode_document("# A") + encode_document("# B"))

    assert decoder.next_outcome() == Message("# A")
    assert decoder.next_outcome() == Message("# B")
    assert decoder.next_outcome() == PeerClosed()


def test_buffered_frames_are_returned_before_reading_again() -> None:
    decoder, reader = _decoder(encode_document("one") + encode_document("two"))

    assert decoder.next_outcome() == Message("one")
    assert reader.calls == 1
    assert decoder.next_outcome() == Message("two")
    assert reader.calls == 1


def test_frame_split_across_reads() -> None:
    frame = encode_document("x" * 300)
    decoder, _ = _decoder(frame[:1], frame[1:3], frame[3:150], frame[150:])

    assert decoder.next_outcome() == Message("x" * 300)
    assert decoder.next_outcome() == PeerClosed()


def test_text_is_used_verbatim() -> None:
    text = "  # Title\r\n\n\tcode  \né中\U0001f600\n\n"
    decoder, _ = _decoder(encode_document(text))

    outcome = decoder.next_outcome()

    assert isinstance(outcome, Message)
    assert outcome.text == text


def test_empty_string_is_a_message() -> None:
    decoder, _ = _decoder(encode_document(""))

    assert decoder.next_outcome() == Message("")


def test_empty_stream_is_peer_closed() -> None:
    decoder, _ = _decoder()

    assert decoder.next_outcome() == PeerClosed()
    assert decoder.pending_bytes == 0


def test_eof_inside_payload_is_malformed() -> None:
    frame = encode_document("hello world")
    decoder, _ = _decoder(frame[:5])

    outcome = decoder.next_outcome()

    assert isinstance(outcome, Malformed)
    assert "truncated frame" in outcome.cause
    assert decoder.pending_bytes == 5


def test_eof_after_marker_byte_is_malformed() -> None:
    # str8 marker with its length byte missing
    decoder, _ = _decoder(b"\xd9")

    outcome = decoder.next_outcome()

    assert isinstance(outcome, Malformed)
    assert "truncated frame" in outcome.cause


def test_eof_mid_second_frame_reports_its_offset() -> None:
    first = encode_document("# A")
    decoder, _ = _decoder(first + encode_document("# B")[:2])

    assert decoder.next_outcome() == Message("# A")
    outcome = decoder.next_outcome()

    assert isinstance(outcome, Malformed)
    assert f"offset {len(first)}" in outcome.cause
    assert decoder.boundary_offset == len(first)


def test_integer_frame_is_malformed() -> None:
    decoder, _ = _decoder(msgpack.packb(42) + encode_document("later"))

    outcome = decoder.next_outcome()

    assert isinstance(outcome, Malformed)
    assert "unexpected integer" in outcome.cause


def test_binary_frame_is_malformed() -> None:
    decoder, _ = _decoder(msgpack.packb(b"# A", use_bin_type=True))

    outcome = decoder.next_outcome()

    assert isinstance(outcome, Malformed)
    assert "unexpected binary" in outcome.cause


def test_container_frames_are_malformed() -> None:
    for value, label in ((["# A"], "array"), ({"text": "# A"}, "map"), (None, "nil")):
        decoder, _ = _decoder(msgpack.packb(value))
        outcome = decoder.next_outcome()
        assert isinstance(outcome, Malformed)
        assert f"unexpected {label}" in outcome.cause


def test_invalid_utf8_is_malformed() -> None:
    decoder, _ = _decoder(b"\xa2\xff\xfe")

    outcome = decoder.next_outcome()

    assert isinstance(outcome, Malformed)
    assert "offset 0" in outcome.cause


def test_reserved_marker_is_malformed() -> None:
    decoder, _ = _decoder(b"\xc1")

    outcome = decoder.next_outcome()

    assert isinstance(outcome, Malformed)
    assert "offset 0" in outcome.cause


def test_no_reads_after_terminal_outcome() -> None:
    decoder, reader = _decoder(msgpack.packb(7), encode_document("never read"))

    first = decoder.next_outcome()
    calls = reader.calls
    second = decoder.next_outcome()

    assert isinstance(first, Malformed)
    assert second == first
    assert reader.calls == calls
    assert decoder.finished is True


def test_no_reads_after_peer_closed() -> None:
    decoder, reader = _decoder()

    assert decoder.next_outcome() == PeerClosed()
    calls = reader.calls
    assert decoder.next_outcome() == PeerClosed()
    assert reader.calls == calls


def test_oversized_frame_is_malformed() -> None:
    frame = encode_document("y" * 64)
    reader = ChunkReader([frame])
    decoder = FrameDecoder(reader, max_frame_bytes=16)

    outcome = decoder.next_outcome()

    assert isinstance(outcome, Malformed)
    assert "byte limit" in outcome.cause


def test_container_marker_rejected_without_reading_later_frames() -> None:
    decoder, reader = _decoder(b"\x92", encode_document("# A"), encode_document("# B"))

    outcome = decoder.next_outcome()

    assert isinstance(outcome, Malformed)
    assert "unexpected array marker 0x92 at offset 0" in outcome.cause
    assert reader.calls == 1


def test_binary_header_rejected_before_its_payload() -> None:
    # bin32 declaring 1 MiB that never arrives
    decoder, reader = _decoder(b"\xc6\x00\x10\x00\x00")

    outcome = decoder.next_outcome()

    assert isinstance(outcome, Malformed)
    assert "unexpected binary marker 0xc6" in outcome.cause
    assert "truncated" not in outcome.cause
    assert reader.calls == 1


def test_non_string_marker_after_a_message_reports_its_offset() -> None:
    first = encode_document("# A")
    decoder, reader = _decoder(first + b"\xdc\x00\x02", encode_document("# B"))

    assert decoder.next_outcome() == Message("# A")
    outcome = decoder.next_outcome()

    assert isinstance(outcome, Malformed)
    assert f"unexpected array marker 0xdc at offset {len(first)}" in outcome.cause
    assert reader.calls == 1


def test_frame_under_limit_followed_by_next_frame_in_same_read() -> None:
    frame = encode_document("x" * 85)
    following = encode_document("y" * 60)
    assert len(frame) == 87 and len(following) == 62
    reader = ChunkReader([frame[:80], frame[80:] + following])
    decoder = FrameDecoder(reader, max_frame_bytes=100)

    assert decoder.next_outcome() == Message("x" * 85)
    assert decoder.next_outcome() == Message("y" * 60)
    assert decoder.next_outcome() == PeerClosed()


def test_read_larger_than_limit_is_fed_in_pieces() -> None:
    frames = [encode_document(f"doc {i} " + "z" * 20) for i in range(10)]
    decoder = FrameDecoder(ChunkReader([b"".join(frames)]), max_frame_bytes=40)

    texts = [decoder.next_outcome() for _ in range(10)]

    assert texts == [Message(f"doc {i} " + "z" * 20) for i in range(10)]
    assert decoder.next_outcome() == PeerClosed()
