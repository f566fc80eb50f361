"""
Chat retrieval: turns the active path of a conversation into a provider call.

Every retrieval runs inside a CancelScope. The scope owns the SIGINT handler
for the duration of the call, so an interrupt cancels the in-flight request
exactly once and surfaces as RetrievalCancelled instead of a provider error.
"""

from __future__ import annotations

import abc
import json
import random
import signal
import threading
import time
from typing import Any, Callable, Dict, Iterator, List, Optional

import requests

from .chain import ROLE_SYSTEM, Conversation
from .config import MAX_RETRIES, REQUEST_TIMEOUT
from .context import Context
from .errors import ConfigError, MissingCredentialsError, ProviderError, RetrievalCancelled
from .models import AppConfig, Profile

Sink = Callable[[str], None]

# Base backoff delays in seconds for retry attempts 1, 2, 3+
BACKOFF_DELAYS = [1.0, 2.0, 4.0]


# -----------------------------
# Cancellation
# -----------------------------

class CancelScope:
    """
    Cancellation boundary around one provider call.

    On entry in the main thread the scope replaces the SIGINT handler; the
    first interrupt runs the registered callbacks (closing the open response)
    and raises RetrievalCancelled, later interrupts are ignored until the scope
    exits and the previous handler is restored. cancel() may also be called
    directly, e.g. from another thread.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._cancelled = threading.Event()
        self._callbacks: List[Callable[[], None]] = []
        self._previous: Any = None
        self._installed = False

    def __enter__(self) -> "CancelScope":
        if threading.current_thread() is threading.main_thread():
            self._previous = signal.getsignal(signal.SIGINT)
            signal.signal(signal.SIGINT, self._on_signal)
            self._installed = True
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if self._installed:
            # getsignal() returns None for handlers not installed from Python
            previous = self._previous if self._previous is not None else signal.default_int_handler
            signal.signal(signal.SIGINT, previous)
            self._installed = False
        return False

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def on_cancel(self, callback: Callable[[], None]) -> None:
        """Register a callback run on cancellation; runs immediately if already cancelled."""
        with self._lock:
            if not self._cancelled.is_set():
                self._callbacks.append(callback)
                return
        callback()

    def cancel(self) -> bool:
        """Cancel the scope. Returns False when it was already cancelled."""
        with self._lock:
            if self._cancelled.is_set():
                return False
            self._cancelled.set()
            callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback()
        return True

    def raise_if_cancelled(self) -> None:
        if self._cancelled.is_set():
            raise RetrievalCancelled()

    def _on_signal(self, signum, frame) -> None:
        if self.cancel():
            raise RetrievalCancelled()


# -----------------------------
# Server-sent events
# -----------------------------

def iter_sse_data(response: requests.Response) -> Iterator[str]:
    """Yield the payload of every `data:` line of an event stream."""
    # Event streams are UTF-8 regardless of the charset the server declares
    for raw in response.iter_lines():
        if not raw:
            continue
        line = raw.decode("utf-8")
        if line.startswith("data:"):
            yield line[5:].lstrip()


def decode_event(data: str) -> Dict[str, Any]:
    try:
        event = json.loads(data)
    except ValueError as e:
        raise ProviderError(f"malformed stream event: {data[:200]}") from e
    if not isinstance(event, dict):
        raise ProviderError(f"unexpected stream event: {data[:200]}")
    return event


# -----------------------------
# Provider base
# -----------------------------

class ChatProvider(abc.ABC):
    """
    Vendor-neutral retrieval over a requests session.

    Subclasses describe the endpoint, the request body and how replies are
    read; the base class handles retries, streaming and cancellation.
    """

    label = "Chat"

    def __init__(self, ctx: Context, base_url: str, session: Optional[requests.Session] = None) -> None:
        self.ctx = ctx
        self.base_url = base_url.rstrip("/")
        self.session = session if session is not None else requests.Session()

    @abc.abstractmethod
    def url(self) -> str:
        ...

    @abc.abstractmethod
    def build_payload(self, profile: Profile, messages: List[Dict[str, str]], stream: bool) -> Dict[str, Any]:
        ...

    @abc.abstractmethod
    def parse_rest(self, body: Dict[str, Any]) -> str:
        ...

    @abc.abstractmethod
    def parse_stream(self, events: Iterator[str]) -> Iterator[str]:
        """Turn `data:` payloads into text increments."""

    def outbound_messages(self, conversation: Conversation) -> List[Dict[str, str]]:
        """System prompt first, then the path from ROOT to the head."""
        messages: List[Dict[str, str]] = []
        if conversation.system:
            messages.append({"role": ROLE_SYSTEM, "content": conversation.system})
        for msg in conversation.path_from_head():
            messages.append({"role": msg.role, "content": msg.content})
        return messages

    def retrieve(self, conversation: Conversation, use_rest: bool = False, sink: Optional[Sink] = None) -> str:
        """
        Retrieve the reply to the active path and return its full text.

        Text is written to sink as it arrives (the console by default).

        Raises:
            ProviderError: network or API failure.
            RetrievalCancelled: the user interrupted the call.
        """
        sink = sink or self.ctx.write
        stream = not use_rest
        payload = self.build_payload(conversation.profile, self.outbound_messages(conversation), stream)
        self.ctx.debug(
            f"POST {self.url()} model={payload.get('model')} messages={len(payload.get('messages', []))} stream={stream}"
        )
        with CancelScope() as scope:
            response = self.post(payload, scope, stream)
            scope.on_cancel(response.close)
            try:
                if use_rest:
                    text = self.parse_rest(self._json_body(response))
                    sink(text)
                    return text
                parts: List[str] = []
                for chunk in self.parse_stream(iter_sse_data(response)):
                    scope.raise_if_cancelled()
                    sink(chunk)
                    parts.append(chunk)
                scope.raise_if_cancelled()
                return "".join(parts)
            except requests.exceptions.RequestException as e:
                if scope.cancelled:
                    raise RetrievalCancelled() from e
                raise ProviderError(f"{self.label} API stream failed: {e}") from e
            finally:
                response.close()

    def post(self, payload: Dict[str, Any], scope: CancelScope, stream: bool) -> requests.Response:
        """
        POST payload with a bounded retry loop for transient failures.

        Timeouts and HTTP 5xx are retried with exponential backoff and jitter;
        4xx errors are raised immediately with a truncated body.
        """
        url = self.url()
        attempt = 0
        while True:
            attempt += 1
            scope.raise_if_cancelled()
            try:
                r = self.session.post(url, json=payload, timeout=REQUEST_TIMEOUT, stream=stream)
            except requests.exceptions.Timeout as e:
                if attempt <= MAX_RETRIES:
                    self._backoff(attempt, "timeout")
                    continue
                raise ProviderError(f"{self.label} API timeout after {attempt} attempt(s): {e}") from e
            except requests.exceptions.RequestException as e:
                raise ProviderError(f"{self.label} API request failed: {e}") from e

            if r.status_code == 200:
                return r
            body = r.text[:2000]
            r.close()
            if r.status_code >= 500 and attempt <= MAX_RETRIES:
                self._backoff(attempt, f"received {r.status_code}")
                continue
            raise ProviderError(f"{self.label} API error {r.status_code}: {body}")

    def _backoff(self, attempt: int, reason: str) -> None:
        base_delay = BACKOFF_DELAYS[min(attempt - 1, len(BACKOFF_DELAYS) - 1)]
        delay = base_delay * random.uniform(0.5, 1.5)
        self.ctx.log(f"{self.label} API attempt {attempt} {reason}; retrying in {delay:.2f}s...")
        time.sleep(delay)

    def _json_body(self, response: requests.Response) -> Dict[str, Any]:
        try:
            body = response.json()
        except ValueError as e:
            raise ProviderError(f"{self.label} API returned invalid JSON: {response.text[:200]}") from e
        if not isinstance(body, dict):
            raise ProviderError(f"{self.label} API returned an unexpected body")
        return body


def provide_chat(ctx: Context, profile: Profile, cfg: AppConfig, session: Optional[requests.Session] = None) -> ChatProvider:
    """
    Build the provider for the profile's vendor.

    Raises:
        MissingCredentialsError: no API key for the vendor.
        ConfigError: unknown vendor.
    """
    # Vendor modules import this one
    if profile.vendor == "openai":
        from .openai_chat import OpenAIChat

        if not cfg.openai_api_key:
            raise MissingCredentialsError("OpenAI API key missing. Set openai_api_key in config.yaml or OPENAI_API_KEY.")
        return OpenAIChat(ctx, cfg.openai_api_key, session=session)
    if profile.vendor == "anthropic":
        from .anthropic_chat import AnthropicChat

        if not cfg.anthropic_api_key:
            raise MissingCredentialsError(
                "Anthropic API key missing. Set anthropic_api_key in config.yaml or ANTHROPIC_API_KEY."
            )
        return AnthropicChat(ctx, cfg.anthropic_api_key, session=session)
    raise ConfigError(f"unsupported vendor: {profile.vendor}")
