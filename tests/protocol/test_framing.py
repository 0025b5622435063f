"""Tests for newline-delimited JSON framing."""

from __future__ import annotations

import asyncio
import json

import pytest

from fsmcp.protocol.errors import INVALID_REQUEST, PARSE_ERROR, FramingError
from fsmcp.protocol.framing import decode_frame, encode_message, iter_frames, parse_message
from fsmcp.protocol.models import (
    JsonRpcNotification,
    JsonRpcRequest,
    JsonRpcResponse,
)


def _reader(data: bytes, *, eof: bool = True, limit: int = 2**16) -> asyncio.StreamReader:
    reader = asyncio.StreamReader(limit=limit)
    reader.feed_data(data)
    if eof:
        reader.feed_eof()
    return reader


async def _collect(reader: asyncio.StreamReader) -> list[object]:
    return [item async for item in iter_frames(reader)]


def _deeply_nested(depth: int = 5000) -> bytes:
    inner = "[" * depth + "]" * depth
    return ('{"jsonrpc":"2.0","id":7,"method":"ping","params":{"a":' + inner + "}}").encode()


class TestEncode:
    def test_single_line(self) -> None:
        frame = encode_message(
            JsonRpcRequest(id=1, method="tools/call", params={"text": "a\nb"})
        )
        assert frame.endswith(b"\n")
        assert frame.count(b"\n") == 1
        assert json.loads(frame)["params"] == {"text": "a\nb"}

    def test_non_ascii_is_utf8(self) -> None:
        frame = encode_message(JsonRpcNotification(method="x", params={"v": "héllo"}))
        assert "héllo".encode() in frame


class TestDecode:
    def test_request(self) -> None:
        message = decode_frame(b'{"jsonrpc":"2.0","id":"r1","method":"ping"}\n')
        assert isinstance(message, JsonRpcRequest)
        assert message.id == "r1"
        assert message.params == {}

    def test_notification(self) -> None:
        message = decode_frame('{"jsonrpc":"2.0","method":"notifications/initialized"}')
        assert isinstance(message, JsonRpcNotification)

    def test_response(self) -> None:
        message = decode_frame('{"jsonrpc":"2.0","id":4,"result":{}}')
        assert isinstance(message, JsonRpcResponse)

    def test_invalid_json_is_parse_error(self) -> None:
        with pytest.raises(FramingError) as info:
            decode_frame(b"{not json")
        assert info.value.code == PARSE_ERROR
        assert info.value.request_id is None

    def test_deep_nesting_is_parse_error(self) -> None:
        with pytest.raises(FramingError) as info:
            decode_frame(_deeply_nested())
        assert info.value.code == PARSE_ERROR
        assert "nested too deeply" in info.value.message
        assert not info.value.fatal

    def test_invalid_utf8_is_parse_error(self) -> None:
        with pytest.raises(FramingError) as info:
            decode_frame(b"\xff\xfe\n")
        assert info.value.code == PARSE_ERROR

    @pytest.mark.parametrize("payload", [[1, 2], "text", 3])
    def test_non_object_is_invalid_request(self, payload: object) -> None:
        with pytest.raises(FramingError) as info:
            parse_message(payload)
        assert info.value.code == INVALID_REQUEST

    def test_wrong_version_keeps_id(self) -> None:
        with pytest.raises(FramingError) as info:
            parse_message({"jsonrpc": "1.0", "id": 9, "method": "ping"})
        assert info.value.code == INVALID_REQUEST
        assert info.value.request_id == 9

    def test_params_must_be_object(self) -> None:
        with pytest.raises(FramingError, match="params"):
            parse_message({"jsonrpc": "2.0", "id": 1, "method": "x", "params": [1]})

    def test_null_params_become_empty(self) -> None:
        message = parse_message({"jsonrpc": "2.0", "id": 1, "method": "x", "params": None})
        assert isinstance(message, JsonRpcRequest)
        assert message.params == {}

    @pytest.mark.parametrize("bad_id", [True, 1.5, None, {"a": 1}])
    def test_bad_id(self, bad_id: object) -> None:
        with pytest.raises(FramingError, match="'id'") as info:
            parse_message({"jsonrpc": "2.0", "id": bad_id, "method": "x"})
        assert info.value.request_id is None

    def test_empty_method(self) -> None:
        with pytest.raises(FramingError, match="method"):
            parse_message({"jsonrpc": "2.0", "id": 1, "method": ""})

    def test_neither_method_nor_outcome(self) -> None:
        with pytest.raises(FramingError, match="neither"):
            parse_message({"jsonrpc": "2.0", "id": 1})


class TestIterFrames:
    async def test_yields_messages_and_skips_blank_lines(self) -> None:
        data = (
            b'{"jsonrpc":"2.0","id":1,"method":"ping"}\n'
            b"\n"
            b"   \n"
            b'{"jsonrpc":"2.0","method":"notifications/initialized"}\n'
        )
        items = await _collect(_reader(data))
        assert [type(item) for item in items] == [JsonRpcRequest, JsonRpcNotification]

    async def test_bad_frame_does_not_stop_stream(self) -> None:
        data = b"garbage\n" + b'{"jsonrpc":"2.0","id":2,"method":"ping"}\n'
        items = await _collect(_reader(data))
        assert isinstance(items[0], FramingError)
        assert not items[0].fatal
        assert isinstance(items[1], JsonRpcRequest)

    async def test_deeply_nested_frame_does_not_stop_stream(self) -> None:
        data = _deeply_nested() + b"\n" + b'{"jsonrpc":"2.0","id":8,"method":"ping"}\n'
        items = await _collect(_reader(data, limit=2**20))
        assert isinstance(items[0], FramingError)
        assert items[0].code == PARSE_ERROR
        assert isinstance(items[1], JsonRpcRequest)
        assert items[1].id == 8

    async def test_truncated_final_frame_is_fatal(self) -> None:
        items = await _collect(_reader(b'{"jsonrpc":"2.0","id":1,"meth'))
        assert len(items) == 1
        assert isinstance(items[0], FramingError)
        assert items[0].fatal

    async def test_oversized_frame_is_reported_and_skipped(self) -> None:
        big = b'{"jsonrpc":"2.0","id":1,"method":"' + b"x" * 200 + b'"}\n'
        data = big + b'{"jsonrpc":"2.0","id":2,"method":"ping"}\n'
        items = await _collect(_reader(data, limit=64))
        assert isinstance(items[0], FramingError)
        assert "size limit" in items[0].message
        assert isinstance(items[-1], JsonRpcRequest)
        assert items[-1].id == 2

    async def test_empty_stream(self) -> None:
        assert await _collect(_reader(b"")) == []
