"""
Streaming chat relay.

SSELineDecoder turns the gateway's `data: {...}` event lines into content
fragments; ChatRelay opens the upstream stream and hands back a ChatStream the
HTTP layer re-emits to the browser as it arrives.
"""
import json
from dataclasses import dataclass
from typing import AsyncIterator, List, Optional

import httpx

from core.exceptions import InvalidInput, ProtocolError, UpstreamError
from core.logger import logger
from services.ai_gateway import GatewaySettings, SYSTEM_PROMPTS, raise_for_gateway_status

DATA_PREFIX = "data: "
DONE_SENTINEL = "[DONE]"
MESSAGE_ROLES = ("user", "assistant")


@dataclass(frozen=True)
class Fragment:
    text: str


@dataclass(frozen=True)
class Done:
    pass


def _strip_cr(line: str) -> str:
    return line[:-1] if line.endswith("\r") else line


def _delta_content(obj) -> Optional[str]:
    """choices[0].delta.content, or None for any other shape."""
    try:
        content = obj["choices"][0]["delta"]["content"]
    except (KeyError, IndexError, TypeError):
        return None
    return content if isinstance(content, str) and content else None


class SSELineDecoder:
    """
    Incremental decoder for an OpenAI-style event stream.

    State is the text buffer plus a flag telling whether the first buffered
    line is a data line that already failed to parse. Such a line is retried
    once, joined with the next complete line; if that still does not parse it
    is dropped so the stream keeps moving.
    """

    def __init__(self):
        self._buffer = ""
        self._retrying = False
        self.done = False

    def feed(self, text: str) -> List[object]:
        if self.done:
            return []
        self._buffer += text
        return self._drain()

    def flush(self) -> List[object]:
        """Decode what is left at end of stream; unparseable leftovers are ignored."""
        if self.done:
            return []
        events = []
        leftover, self._buffer = self._buffer, ""
        self._retrying = False
        for raw in leftover.split("\n"):
            payload = self._payload(_strip_cr(raw))
            if payload is None:
                continue
            if payload == DONE_SENTINEL:
                self.done = True
                events.append(Done())
                break
            try:
                obj = json.loads(payload)
            except ValueError:
                continue
            content = _delta_content(obj)
            if content:
                events.append(Fragment(content))
        return events

    @staticmethod
    def _payload(line: str) -> Optional[str]:
        """JSON text of a data line; None for comments, blanks and other fields."""
        if not line.strip() or line.startswith(":"):
            return None
        if not line.startswith(DATA_PREFIX):
            return None
        return line[len(DATA_PREFIX):].strip()

    def _drain(self) -> List[object]:
        events = []
        while not self.done:
            newline = self._buffer.find("\n")
            if newline == -1:
                break
            line = _strip_cr(self._buffer[:newline])
            rest = self._buffer[newline + 1:]

            if self._retrying:
                following = rest.find("\n")
                if following == -1:
                    break
                self._retrying = False
                joined = self._payload(line) + _strip_cr(rest[:following])
                try:
                    obj = json.loads(joined)
                except ValueError:
                    logger.warning(f"Dropping unparseable stream line: {line[:200]}")
                    self._buffer = rest
                    continue
                self._buffer = rest[following + 1:]
                content = _delta_content(obj)
                if content:
                    events.append(Fragment(content))
                continue

            self._buffer = rest
            payload = self._payload(line)
            if payload is None:
                continue
            if payload == DONE_SENTINEL:
                self.done = True
                self._buffer = ""
                events.append(Done())
                break
            try:
                obj = json.loads(payload)
            except ValueError:
                # Push the line back and wait for more text
                self._buffer = line + "\n" + rest
                self._retrying = True
                break
            content = _delta_content(obj)
            if content:
                events.append(Fragment(content))
        return events


def validate_messages(messages, user_role: str) -> List[dict]:
    if user_role not in SYSTEM_PROMPTS:
        raise InvalidInput("userRole must be 'student' or 'admin'")
    if not messages:
        raise InvalidInput("messages must not be empty")
    cleaned = []
    for message in messages:
        role = message.get("role") if isinstance(message, dict) else None
        content = message.get("content") if isinstance(message, dict) else None
        if role not in MESSAGE_ROLES or not isinstance(content, str):
            raise InvalidInput("Each message needs a role of 'user' or 'assistant' and text content")
        cleaned.append({"role": role, "content": content})
    return cleaned


class ChatStream:
    """An open upstream response; iterate fragments(), then aclose()."""

    def __init__(self, client: httpx.AsyncClient, response: httpx.Response):
        self._client = client
        self._response = response
        self._chunks = response.aiter_text()
        self._first: Optional[str] = None
        self._closed = False

    async def prime(self):
        """Read up to the first non-empty chunk so a bodiless stream fails before streaming starts."""
        while True:
            try:
                chunk = await self._chunks.__anext__()
            except StopAsyncIteration:
                raise ProtocolError()
            if chunk:
                self._first = chunk
                return

    async def fragments(self) -> AsyncIterator[str]:
        decoder = SSELineDecoder()
        try:
            pending = [self._first] if self._first else []
            self._first = None
            for chunk in pending:
                for event in decoder.feed(chunk):
                    if isinstance(event, Done):
                        return
                    yield event.text
            async for chunk in self._chunks:
                for event in decoder.feed(chunk):
                    if isinstance(event, Done):
                        return
                    yield event.text
            for event in decoder.flush():
                if isinstance(event, Done):
                    return
                yield event.text
        except httpx.HTTPError as e:
            logger.error(f"Chat stream interrupted: {e}")
            raise UpstreamError("Chat stream interrupted")
        finally:
            await self.aclose()

    async def aclose(self):
        if self._closed:
            return
        self._closed = True
        await self._chunks.aclose()
        await self._response.aclose()
        await self._client.aclose()


class ChatRelay:
    """Forwards a conversation to the gateway with streaming enabled."""

    def __init__(self, settings: GatewaySettings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = settings
        self._transport = transport

    def build_payload(self, messages: List[dict], user_role: str) -> dict:
        return {
            "model": self.settings.model,
            "messages": [{"role": "system", "content": SYSTEM_PROMPTS[user_role]}] + messages,
            "stream": True,
        }

    async def open(self, messages, user_role: str) -> ChatStream:
        """
        Start the upstream stream.

        Every error is raised here, before any output is produced:
        InvalidInput, RateLimited, ServiceUnavailable, UpstreamError, ProtocolError.
        """
        payload = self.build_payload(validate_messages(messages, user_role), user_role)

        # No read timeout: the relay relies on upstream and transport timeouts
        client = httpx.AsyncClient(
            timeout=httpx.Timeout(None, connect=self.settings.connect_timeout),
            transport=self._transport
        )
        try:
            request = client.build_request("POST", self.settings.url, json=payload, headers=self.settings.headers)
            response = await client.send(request, stream=True)
        except httpx.HTTPError as e:
            await client.aclose()
            logger.error(f"AI gateway request failed: {e}")
            raise UpstreamError("AI gateway error")

        if not 200 <= response.status_code < 300:
            try:
                body = (await response.aread()).decode("utf-8", errors="replace")
            finally:
                await response.aclose()
                await client.aclose()
            raise_for_gateway_status(response.status_code, body)

        stream = ChatStream(client, response)
        try:
            await stream.prime()
        except (ProtocolError, httpx.HTTPError) as e:
            await stream.aclose()
            if isinstance(e, ProtocolError):
                logger.error("AI gateway returned an empty stream")
                raise
            raise UpstreamError("AI gateway error")
        return stream
