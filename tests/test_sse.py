"""Tests for the incremental data-line parser."""

from notestream.streaming.sse import SSELineParser


def _feed_all(chunks: list[bytes]) -> list[str]:
    parser = SSELineParser()
    out: list[str] = []
    for chunk in chunks:
        out.extend(parser.feed(chunk))
    out.extend(parser.flush())
    return out


class TestCompleteLines:
    def test_single_event(self):
        assert _feed_all([b'data: {"a":1}\n\n']) == ['{"a":1}']

    def test_non_data_lines_dropped(self):
        parser = SSELineParser()
        payloads = parser.feed(b"event: message_start\nid: 7\n: ping\ndata: x\n\n")
        assert payloads == ["x"]
        assert parser.dropped_lines == 3

    def test_crlf_terminators(self):
        assert _feed_all([b"data: one\r\n\r\ndata: two\r\n\r\n"]) == ["one", "two"]

    def test_prefix_requires_space(self):
        assert _feed_all([b"data:x\ndata: y\n"]) == ["y"]

    def test_idempotent_parsing(self):
        body = b"data: a\n\nevent: e\ndata: b\n\ndata: [DONE]\n\n"
        assert _feed_all([body]) == _feed_all([body]) == ["a", "b", "[DONE]"]


class TestChunkBoundaries:
    def test_every_split_offset(self):
        payload = '{"choices":[{"delta":{"content":"hello world, this is fine"}}]}'
        body = f"data: {payload}\n\n".encode()
        for offset in range(1, len(body)):
            assert _feed_all([body[:offset], body[offset:]]) == [payload], offset

    def test_byte_at_a_time(self):
        body = b"data: first\n\ndata: second\n\n"
        assert _feed_all([bytes([b]) for b in body]) == ["first", "second"]

    def test_multibyte_character_split(self):
        body = "data: Hyvää päivää\n\n".encode()
        split = body.index("ä".encode()) + 1
        assert _feed_all([body[:split], body[split:]]) == ["Hyvää päivää"]

    def test_partial_line_is_pending(self):
        parser = SSELineParser()
        assert parser.feed(b"data: par") == []
        assert parser.pending == b"data: par"
        assert parser.feed(b"tial\n") == ["partial"]
        assert parser.pending == b""


class TestFlush:
    def test_unterminated_final_line(self):
        parser = SSELineParser()
        assert parser.feed(b"data: a\ndata: tail") == ["a"]
        assert parser.flush() == ["tail"]
        assert parser.flush() == []

    def test_flush_ignores_non_data(self):
        parser = SSELineParser()
        parser.feed(b"event: x")
        assert parser.flush() == []
