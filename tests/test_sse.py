# tests/test_sse.py

from __future__ import annotations

import httpx
import pytest

from testsmith.events.sse import HttpxEventTransport, SseDecoder, SseMessage, TransportError


def _decode_all(lines: list[str]) -> list[SseMessage]:
    decoder = SseDecoder()
    out = []
    for line in lines:
        msg = decoder.decode(line)
        if msg is not None:
            out.append(msg)
    return out


def test_decoder_named_events_and_multiline_data() -> None:
    messages = _decode_all(
        [
            ": keep-alive",
            "event: task-started",
            'data: {"a":',
            "data: 1}",
            "",
            "data:plain",
            "",
        ]
    )
    assert messages == [
        SseMessage(event="task-started", data='{"a":\n1}'),
        SseMessage(event="message", data="plain"),
    ]


def test_decoder_tracks_last_event_id() -> None:
    decoder = SseDecoder()
    for line in ("id: 41", "event: heartbeat", "data: {}"):
        assert decoder.decode(line) is None
    msg = decoder.decode("")
    assert msg is not None and msg.id == "41"
    assert decoder.last_event_id == "41"


def test_decoder_blank_lines_without_data() -> None:
    decoder = SseDecoder()
    assert decoder.decode("") is None
    assert decoder.decode("event: heartbeat") is None
    assert decoder.decode("") is None
    # the event name does not leak into the next message
    decoder.decode("data: x")
    assert decoder.decode("").event == "message"


def _sse_response(body: bytes, *, status: int = 200, content_type: str = "text/event-stream") -> httpx.Response:
    return httpx.Response(status, headers={"content-type": content_type}, content=body)


@pytest.mark.asyncio
async def test_transport_streams_messages_and_resends_last_id() -> None:
    seen_headers: list[httpx.Headers] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen_headers.append(request.headers)
        return _sse_response(b"id: 9\nevent: heartbeat\ndata: {\"timestamp\": \"t\"}\n\n")

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        transport = HttpxEventTransport(client=client)

        async with transport.open("http://events.test/sse") as stream:
            messages = [m async for m in stream]
        async with transport.open("http://events.test/sse") as stream:
            _ = [m async for m in stream]

    assert messages == [SseMessage(event="heartbeat", data='{"timestamp": "t"}', id="9")]
    assert seen_headers[0]["accept"] == "text/event-stream"
    assert "last-event-id" not in seen_headers[0]
    assert seen_headers[1]["last-event-id"] == "9"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        _sse_response(b"", status=503),
        _sse_response(b"{}", content_type="application/json"),
    ],
)
async def test_transport_rejects_bad_responses(response: httpx.Response) -> None:
    async with httpx.AsyncClient(transport=httpx.MockTransport(lambda request: response)) as client:
        with pytest.raises(TransportError):
            async with HttpxEventTransport(client=client).open("http://events.test/sse"):
                pass


@pytest.mark.asyncio
async def test_transport_wraps_connect_errors() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        with pytest.raises(TransportError, match="ConnectError"):
            async with HttpxEventTransport(client=client).open("http://events.test/sse"):
                pass
