# OpenAI Chat Completions provider (REST and SSE streaming).

from typing import Any, Dict, Iterator, List, Optional

import requests

from .chat import ChatProvider, decode_event
from .config import OPENAI_BASE_URL
from .context import Context
from .errors import ProviderError
from .models import Profile

# Scalar parameters forwarded when non-zero
SCALAR_PARAMETERS = ("temperature", "top_p", "max_tokens", "presence_penalty", "frequency_penalty")

DONE_MARKER = "[DONE]"


class OpenAIChat(ChatProvider):
    label = "OpenAI"

    def __init__(
        self,
        ctx: Context,
        api_key: str,
        base_url: str = OPENAI_BASE_URL,
        session: Optional[requests.Session] = None,
    ) -> None:
        super().__init__(ctx, base_url, session)
        self.session.headers.update(
            {
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            }
        )

    def url(self) -> str:
        return f"{self.base_url}/chat/completions"

    def build_payload(self, profile: Profile, messages: List[Dict[str, str]], stream: bool) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"model": profile.model, "messages": messages}
        if stream:
            payload["stream"] = True
        params = profile.custom_parameters
        for name in SCALAR_PARAMETERS:
            value = getattr(params, name)
            if value:
                payload[name] = value
        if params.stop:
            payload["stop"] = list(params.stop)
        if params.logit_bias:
            payload["logit_bias"] = dict(params.logit_bias)
        if profile.response_format == "json_object":
            payload["response_format"] = {"type": "json_object"}
        return payload

    def parse_rest(self, body: Dict[str, Any]) -> str:
        choices = body.get("choices") or []
        if not choices:
            raise ProviderError("OpenAI API returned no choices")
        message = choices[0].get("message") or {}
        return message.get("content") or ""

    def parse_stream(self, events: Iterator[str]) -> Iterator[str]:
        for data in events:
            if data == DONE_MARKER:
                return
            event = decode_event(data)
            if event.get("error"):
                error = event["error"]
                detail = error.get("message") if isinstance(error, dict) else error
                raise ProviderError(f"OpenAI stream error: {detail}")
            choices = event.get("choices") or []
            if not choices:
                continue
            content = (choices[0].get("delta") or {}).get("content")
            if content:
                yield content
