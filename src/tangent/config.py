# Environment-driven configuration constants. Paths under the tangent home
# directory are resolved at call time in settings.py so they can be redirected.

import os

# Sentinel character that marks an input line as a command
COMMAND_PREFIX = os.environ.get("TANGENT_COMMAND_PREFIX", ":") or ":"

# Default model for the initial profile
DEFAULT_MODEL = os.environ.get("TANGENT_DEFAULT_MODEL", "gpt-4o")

# Seconds to wait on a provider call (connect + read)
REQUEST_TIMEOUT = int(os.environ.get("TANGENT_REQUEST_TIMEOUT", "600"))

# Retries for timeouts and HTTP 5xx before any reply data arrived
MAX_RETRIES = int(os.environ.get("TANGENT_MAX_RETRIES", "3"))

# OpenAI (Chat Completions)
OPENAI_BASE_URL = os.environ.get("OPENAI_BASE_URL", "https://api.openai.com/v1")

# Anthropic (Messages API)
ANTHROPIC_BASE_URL = os.environ.get("ANTHROPIC_BASE_URL", "https://api.anthropic.com/v1")
ANTHROPIC_VERSION = os.environ.get("ANTHROPIC_VERSION", "2023-06-01")
# Anthropic requires max_tokens; used when the profile leaves it at API default
ANTHROPIC_DEFAULT_MAX_TOKENS = int(os.environ.get("TANGENT_ANTHROPIC_MAX_TOKENS", "4096"))

# Short id width used in prompts, headers and the editor scratch buffer
SHORT_ID_LEN = 6
