# Anthropic Messages API provider (REST and SSE streaming).

from typing import Any, Dict, Iterator, List, Optional

import requests

from .chain import ROLE_SYSTEM
from .chat import ChatProvider, decode_event
from .config import ANTHROPIC_BASE_URL, ANTHROPIC_DEFAULT_MAX_TOKENS, ANTHROPIC_VERSION
from .context import Context
from .errors import ProviderError
from .models import Profile

# Parameters the Messages API does not accept
UNSUPPORTED_PARAMETERS = ("presence_penalty", "frequency_penalty", "logit_bias")


class AnthropicChat(ChatProvider):
    label = "Anthropic"

    def __init__(
        self,
        ctx: Context,
        api_key: str,
        base_url: str = ANTHROPIC_BASE_URL,
        session: Optional[requests.Session] = None,
    ) -> None:
        super().__init__(ctx, base_url, session)
        self.session.headers.update(
            {
                "x-api-key": api_key,
                "anthropic-version": ANTHROPIC_VERSION,
                "Content-Type": "application/json",
            }
        )

    def url(self) -> str:
        return f"{self.base_url}/messages"

    def build_payload(self, profile: Profile, messages: List[Dict[str, str]], stream: bool) -> Dict[str, Any]:
        """The system prompt moves to the top-level `system` field; max_tokens is mandatory."""
        system = "\n\n".join(m["content"] for m in messages if m["role"] == ROLE_SYSTEM)
        params = profile.custom_parameters
        payload: Dict[str, Any] = {
            "model": profile.model,
            "messages": [m for m in messages if m["role"] != ROLE_SYSTEM],
            "max_tokens": params.max_tokens or ANTHROPIC_DEFAULT_MAX_TOKENS,
        }
        if system:
            payload["system"] = system
        if stream:
            payload["stream"] = True
        if params.temperature:
            payload["temperature"] = params.temperature
        if params.top_p:
            payload["top_p"] = params.top_p
        if params.stop:
            payload["stop_sequences"] = list(params.stop)
        for name in UNSUPPORTED_PARAMETERS:
            if getattr(params, name):
                self.ctx.debug(f"{name} is not supported by the Anthropic API; dropped")
        if profile.response_format != "text":
            self.ctx.debug(f"response_format {profile.response_format} is not supported by the Anthropic API; dropped")
        return payload

    def parse_rest(self, body: Dict[str, Any]) -> str:
        blocks = body.get("content") or []
        return "".join(b.get("text", "") for b in blocks if isinstance(b, dict) and b.get("type") == "text")

    def parse_stream(self, events: Iterator[str]) -> Iterator[str]:
        for data in events:
            event = decode_event(data)
            kind = event.get("type")
            if kind == "content_block_delta":
                delta = event.get("delta") or {}
                if delta.get("type") == "text_delta" and delta.get("text"):
                    yield delta["text"]
            elif kind == "message_stop":
                return
            elif kind == "error":
                error = event.get("error") or {}
                raise ProviderError(f"Anthropic stream error: {error.get('message', error)}")
