# src/testsmith/events/sse.py

from __future__ import annotations

import contextlib
import logging
from dataclasses import dataclass
from typing import AsyncIterator

import httpx

logger = logging.getLogger(__name__)


class TransportError(ConnectionError):
    """The push connection could not be opened, or it dropped."""


@dataclass(slots=True, frozen=True)
class SseMessage:
    event: str
    data: str
    id: str | None = None


class SseDecoder:
    """
    Incremental text/event-stream decoder.

    Feed it one line at a time (without the line terminator); it returns a
    message when a blank line completes one.
    """

    def __init__(self) -> None:
        self._event = ""
        self._data: list[str] = []
        self.last_event_id: str | None = None

    def decode(self, line: str) -> SseMessage | None:
        line = line.rstrip("\r\n")
        if not line:
            return self._dispatch()

        if line.startswith(":"):
            # comment / keep-alive
            return None

        name, sep, value = line.partition(":")
        if sep and value.startswith(" "):
            value = value[1:]

        if name == "event":
            self._event = value
        elif name == "data":
            self._data.append(value)
        elif name == "id":
            if "\0" not in value:
                self.last_event_id = value
        # "retry" and unknown fields are ignored: reconnect timing belongs to the hub.
        return None

    def _dispatch(self) -> SseMessage | None:
        if not self._data:
            self._event = ""
            return None
        msg = SseMessage(event=self._event or "message", data="\n".join(self._data), id=self.last_event_id)
        self._event = ""
        self._data = []
        return msg


class HttpxEventTransport:
    """
    EventTransport over a streaming httpx GET.

    Each open() is one HTTP request; the read timeout is disabled because the
    server may stay quiet between heartbeats.
    """

    def __init__(
        self,
        *,
        client: httpx.AsyncClient | None = None,
        headers: dict[str, str] | None = None,
        connect_timeout: float = 10.0,
    ) -> None:
        self._client = client
        self._headers = dict(headers or {})
        self._connect_timeout = connect_timeout
        self._last_event_id: str | None = None

    def _request_headers(self) -> dict[str, str]:
        headers = {"Accept": "text/event-stream", "Cache-Control": "no-cache", **self._headers}
        if self._last_event_id:
            headers["Last-Event-ID"] = self._last_event_id
        return headers

    @contextlib.asynccontextmanager
    async def open(self, url: str) -> AsyncIterator[AsyncIterator[SseMessage]]:
        client = self._client or httpx.AsyncClient(
            timeout=httpx.Timeout(connect=self._connect_timeout, read=None, write=10.0, pool=self._connect_timeout)
        )
        try:
            async with client.stream("GET", url, headers=self._request_headers()) as response:
                if response.status_code != 200:
                    raise TransportError(f"GET {url} returned HTTP {response.status_code}")
                content_type = response.headers.get("content-type", "")
                if "text/event-stream" not in content_type:
                    raise TransportError(f"GET {url} returned {content_type!r}, expected text/event-stream")
                logger.debug("SSE stream opened url=%s", url)
                yield self._messages(response)
        except httpx.HTTPError as e:
            raise TransportError(f"{e.__class__.__name__}: {e}") from e
        finally:
            if self._client is None:
                await client.aclose()

    async def _messages(self, response: httpx.Response) -> AsyncIterator[SseMessage]:
        decoder = SseDecoder()
        async for line in response.aiter_lines():
            msg = decoder.decode(line)
            if msg is None:
                continue
            if decoder.last_event_id is not None:
                self._last_event_id = decoder.last_event_id
            yield msg
