"""AI / LLM integration client.

Uses an OpenAI-compatible chat completions API when a real key is
configured, otherwise produces deterministic mock output for development.

Structured generations use a single JSON-mode request.  Streaming
generations decode the server-sent ``data:`` lines into ``StreamEvent``s;
``write_file`` tool calls are assembled from their argument fragments and
replayed as file events, then answered so the model can continue.
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterator
from contextlib import aclosing
from dataclasses import dataclass, field
from typing import Any

import httpx

from vibecode.common.enums import GenerationType
from vibecode.common.exceptions import GenerationFailed
from vibecode.config import settings
from vibecode.core.generation.prompts import WRITE_FILE_TOOL
from vibecode.core.streaming.events import StreamEvent
from vibecode.integrations.base import BaseIntegration

FILE_CHUNK_SIZE = 8192


@dataclass
class _ToolCall:
    index: int
    id: str = ""
    name: str = ""
    arguments: str = ""

    def as_message(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.name, "arguments": self.arguments},
        }


@dataclass
class ToolCallAccumulator:
    """Collects ``delta.tool_calls`` fragments keyed by their index."""

    calls: dict[int, _ToolCall] = field(default_factory=dict)

    def feed(self, fragment: dict[str, Any]) -> None:
        index = fragment.get("index", 0)
        call = self.calls.setdefault(index, _ToolCall(index=index))
        if fragment.get("id"):
            call.id = fragment["id"]
        function = fragment.get("function") or {}
        if function.get("name"):
            call.name += function["name"]
        if function.get("arguments"):
            call.arguments += function["arguments"]

    def completed(self) -> list[_ToolCall]:
        return [self.calls[i] for i in sorted(self.calls)]

    def __bool__(self) -> bool:
        return bool(self.calls)


class AIClient(BaseIntegration):
    """AI client that calls OpenAI (or compatible) API, with mock fallback."""

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        model: str | None = None,
        timeout: float | None = None,
        max_tool_rounds: int | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__("ai")
        self._api_key = api_key if api_key is not None else settings.AI_API_KEY
        self._base_url = (base_url or settings.AI_BASE_URL).rstrip("/")
        self._model = model or settings.AI_MODEL
        self._timeout = timeout or settings.AI_TIMEOUT_SECONDS
        self._max_tool_rounds = max_tool_rounds or settings.AI_MAX_TOOL_ROUNDS
        self._transport = transport

    @property
    def is_mock(self) -> bool:
        return self._api_key.startswith("mock_")

    def _http(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self._timeout, transport=self._transport)

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }

    async def health_check(self) -> bool:
        if self.is_mock:
            self.logger.info("AI client health check: OK (mock)")
            return True
        try:
            async with self._http() as client:
                resp = await client.get(f"{self._base_url}/models", headers=self._headers())
                return resp.status_code == 200
        except Exception as e:
            self.logger.error("AI health check failed: %s", e)
            return False

    # ------------------------------------------------------------------
    # Structured (single response)
    # ------------------------------------------------------------------

    async def complete(
        self,
        generation_type: GenerationType,
        system: str,
        messages: list[dict[str, Any]],
        temperature: float = 0.4,
    ) -> str:
        self.logger.info("Structured generation: type=%s history=%d", generation_type.value, len(messages))
        if self.is_mock:
            return _mock_structured(generation_type, messages)

        try:
            async with self._http() as client:
                resp = await client.post(
                    f"{self._base_url}/chat/completions",
                    headers=self._headers(),
                    json={
                        "model": self._model,
                        "messages": [{"role": "system", "content": system}, *messages],
                        "temperature": temperature,
                        "response_format": {"type": "json_object"},
                    },
                )
                resp.raise_for_status()
                data = resp.json()
        except httpx.TimeoutException as e:
            self.logger.error("Model call timed out: %s", e)
            raise GenerationFailed("model call timed out") from e
        except httpx.HTTPError as e:
            self.logger.error("Model call failed: %s", e)
            raise GenerationFailed("model call failed") from e

        try:
            content = data["choices"][0]["message"]["content"] or ""
        except (KeyError, IndexError, TypeError) as e:
            raise GenerationFailed("model response had no content") from e
        self.logger.info("Structured generation complete (%d chars)", len(content))
        return content

    # ------------------------------------------------------------------
    # Streaming
    # ------------------------------------------------------------------

    async def stream(
        self,
        generation_type: GenerationType,
        system: str,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
    ) -> AsyncIterator[StreamEvent]:
        """Yield events until a terminal ``done`` or ``error`` event."""
        self.logger.info("Streaming generation: type=%s history=%d", generation_type.value, len(messages))
        if self.is_mock:
            for event in _mock_stream(generation_type, messages):
                yield event
            return

        conversation: list[dict[str, Any]] = [{"role": "system", "content": system}, *messages]
        try:
            for round_no in range(self._max_tool_rounds):
                calls = ToolCallAccumulator()
                async with aclosing(self._stream_chunks(conversation, tools)) as chunks:
                    async for chunk in chunks:
                        choices = chunk.get("choices") or []
                        if not choices:
                            continue
                        delta = choices[0].get("delta") or {}
                        if delta.get("content"):
                            yield StreamEvent.text_chunk(delta["content"])
                        for fragment in delta.get("tool_calls") or []:
                            calls.feed(fragment)

                if not calls:
                    yield StreamEvent.done(rounds=round_no + 1)
                    return

                completed = calls.completed()
                conversation.append({"role": "assistant", "content": None, "tool_calls": [c.as_message() for c in completed]})
                for call in completed:
                    events, result = self._run_tool(call)
                    for event in events:
                        yield event
                    conversation.append({"role": "tool", "tool_call_id": call.id, "content": result})

            yield StreamEvent.error(f"tool call limit of {self._max_tool_rounds} rounds reached")
        except httpx.TimeoutException as e:
            self.logger.error("Model stream timed out: %s", e)
            yield StreamEvent.error("model stream timed out")
        except (httpx.HTTPError, json.JSONDecodeError) as e:
            self.logger.error("Model stream failed: %s", e)
            yield StreamEvent.error("model stream failed")

    async def _stream_chunks(
        self,
        conversation: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None,
    ) -> AsyncIterator[dict[str, Any]]:
        body: dict[str, Any] = {"model": self._model, "messages": conversation, "stream": True}
        if tools:
            body["tools"] = tools
        async with self._http() as client:
            async with client.stream(
                "POST", f"{self._base_url}/chat/completions", headers=self._headers(), json=body
            ) as resp:
                resp.raise_for_status()
                async for line in resp.aiter_lines():
                    line = line.strip()
                    if not line.startswith("data:"):
                        continue
                    data = line[len("data:"):].strip()
                    if data == "[DONE]":
                        return
                    yield json.loads(data)

    def _run_tool(self, call: _ToolCall) -> tuple[list[StreamEvent], str]:
        """Return the events for one tool call and the result sent back to the model."""
        try:
            arguments = json.loads(call.arguments or "{}")
        except json.JSONDecodeError:
            self.logger.warning("Tool %s sent malformed arguments", call.name)
            return [StreamEvent.tool_call(call.name)], "error: arguments were not valid JSON"

        if call.name != WRITE_FILE_TOOL:
            return [StreamEvent.tool_call(call.name, arguments)], f"error: unknown tool '{call.name}'"

        path = arguments.get("relative_path") or arguments.get("relativePath") or ""
        content = arguments.get("content") or ""
        events = [StreamEvent.tool_call(call.name, {"relative_path": path}), *file_events(path, content)]
        return events, f"File written: {path}"


def file_events(path: str, content: str):
    yield StreamEvent.file_begin(path)
    data = content.encode("utf-8")
    for offset in range(0, len(data), FILE_CHUNK_SIZE):
        yield StreamEvent.file_chunk(path, data[offset:offset + FILE_CHUNK_SIZE])
    yield StreamEvent.file_end(path)


# ----------------------------------------------------------------------
# Mock output
# ----------------------------------------------------------------------

def _last_user_message(messages: list[dict[str, Any]]) -> str:
    for message in reversed(messages):
        if message.get("role") == "user":
            return str(message.get("content") or "")
    return ""


def _mock_page(prompt: str, stylesheet: bool = False) -> str:
    head = '<link rel="stylesheet" href="style.css">' if stylesheet else "<style>body{font-family:sans-serif}</style>"
    title = prompt.strip()[:60] or "Generated app"
    return (
        "<!DOCTYPE html>\n<html lang=\"en\">\n<head>\n<meta charset=\"UTF-8\">\n"
        f"<title>{title}</title>\n{head}\n</head>\n<body>\n"
        f"<h1>{title}</h1>\n<button id=\"action\">Click me</button>\n"
        + ('<script src="script.js"></script>\n' if stylesheet else "")
        + "</body>\n</html>\n"
    )


def _mock_structured(generation_type: GenerationType, messages: list[dict[str, Any]]) -> str:
    prompt = _last_user_message(messages)
    if generation_type == GenerationType.MULTI_FILE:
        return json.dumps({
            "files": [
                {"path": "index.html", "content": _mock_page(prompt, stylesheet=True)},
                {"path": "style.css", "content": "body { font-family: sans-serif; }\n#action { color: red; }\n"},
                {"path": "script.js", "content": "document.getElementById('action').onclick = () => alert('hi');\n"},
            ],
            "description": f"Mock multi-file site for: {prompt[:80]}",
        })
    return json.dumps({"htmlCode": _mock_page(prompt), "description": f"Mock page for: {prompt[:80]}"})


def _mock_stream(generation_type: GenerationType, messages: list[dict[str, Any]]):
    prompt = _last_user_message(messages)
    if generation_type == GenerationType.VUE_PROJECT:
        files = {
            "package.json": json.dumps(
                {"name": "generated-app", "private": True, "scripts": {"dev": "vite", "build": "vite build"},
                 "dependencies": {"vue": "^3.4.0"}, "devDependencies": {"vite": "^5.0.0", "@vitejs/plugin-vue": "^5.0.0"}},
                indent=2,
            ),
            "index.html": '<!DOCTYPE html>\n<html>\n<head><meta charset="UTF-8"><title>App</title></head>\n'
                          '<body><div id="app"></div><script type="module" src="/src/main.js"></script></body>\n</html>\n',
            "src/main.js": "import { createApp } from 'vue'\nimport App from './App.vue'\n\ncreateApp(App).mount('#app')\n",
            "src/App.vue": f"<template>\n  <h1>{prompt[:60] or 'Generated app'}</h1>\n</template>\n",
        }
        yield StreamEvent.text_chunk("Creating the project files.\n")
        for path, content in files.items():
            yield StreamEvent.tool_call(WRITE_FILE_TOOL, {"relative_path": path})
            yield from file_events(path, content)
        yield StreamEvent.text_chunk("Done.")
        yield StreamEvent.done(rounds=1)
        return

    reply = f"Here is my take on: {prompt}" if prompt else "How can I help with your app?"
    for word in reply.split(" "):
        yield StreamEvent.text_chunk(word + " ")
    yield StreamEvent.done(rounds=1)
