# Pydantic v2 models for configuration, profiles and the persisted conversation
# document. Config(extra='forbid') keeps hand-edited YAML strict.

from __future__ import annotations

import re
from typing import Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .config import DEFAULT_MODEL

MAX_STOP_SEQUENCES = 4

DICE_RE = re.compile(r"^(\d*)d(\d+)([+-]\d+)?$")

DEFAULT_SYSTEM_CONTEXT = (
    "You are a helpful assistant running in a terminal. "
    "Answer concisely and use markdown where it helps readability."
)


def parse_dice(expr: str) -> Tuple[int, int, int]:
    """Split an NdM[+K] dice expression into (count, sides, bonus)."""
    m = DICE_RE.match(expr.strip().lower())
    if not m or int(m.group(2)) < 1:
        raise ValueError(f"invalid dice expression: {expr}")
    count = int(m.group(1)) if m.group(1) else 1
    if count < 1:
        raise ValueError(f"invalid dice expression: {expr}")
    return count, int(m.group(2)), int(m.group(3) or 0)


class CustomBaseModel(BaseModel):
    """Pydantic base model configured to forbid unknown fields for strict validation."""
    model_config = ConfigDict(extra="forbid")


class GenerationParameters(CustomBaseModel):
    """Sampling parameters forwarded to the provider. Zero / empty means API default."""

    temperature: float = Field(0.0, ge=0.0, le=2.0, description="Sampling temperature")
    top_p: float = Field(0.0, ge=0.0, le=1.0, description="Nucleus sampling probability mass")
    stop: List[str] = Field(default_factory=list, description="Up to 4 stop sequences")
    max_tokens: int = Field(0, ge=0, description="Maximum tokens to generate")
    presence_penalty: float = Field(0.0, ge=-2.0, le=2.0)
    frequency_penalty: float = Field(0.0, ge=-2.0, le=2.0)
    logit_bias: Dict[str, int] = Field(default_factory=dict, description="Token id to bias (-100..100)")

    @field_validator("stop")
    @classmethod
    def _check_stop(cls, v: List[str]) -> List[str]:
        if len(v) > MAX_STOP_SEQUENCES:
            raise ValueError(f"too many stop values provided, maximum {MAX_STOP_SEQUENCES} allowed")
        return v

    @field_validator("logit_bias")
    @classmethod
    def _check_logit_bias(cls, v: Dict[str, int]) -> Dict[str, int]:
        for token, bias in v.items():
            if not -100 <= bias <= 100:
                raise ValueError(f"logit_bias for token {token} must be between -100 and 100")
        return v


class SeedMessage(CustomBaseModel):
    """A turn replayed into every new conversation started with the profile."""
    role: Literal["user", "assistant"]
    content: str

    @field_validator("role", mode="before")
    @classmethod
    def _lower_role(cls, v: str) -> str:
        return v.lower() if isinstance(v, str) else v


class Profile(CustomBaseModel):
    """Named bundle of vendor, model, user name, generation parameters and save policy."""

    profile_name: str = "default"
    user_name: str = "you"
    vendor: Literal["openai", "anthropic"] = "openai"
    model: str = DEFAULT_MODEL
    system_context: str = DEFAULT_SYSTEM_CONTEXT
    messages: List[SeedMessage] = Field(default_factory=list)
    custom_parameters: GenerationParameters = Field(default_factory=GenerationParameters)
    auto_save: bool = True
    response_format: Literal["text", "json_object"] = "text"
    dice_roll: str = Field("", description="Dice expression rolled on every append, e.g. 1d20")

    @field_validator("dice_roll")
    @classmethod
    def _check_dice_roll(cls, v: str) -> str:
        if v:
            parse_dice(v)
        return v


class AppConfig(CustomBaseModel):
    """Contents of <tangent home>/config.yaml."""

    openai_api_key: str = ""
    anthropic_api_key: str = ""
    current_profile: str = "default.yaml"


# -----------------------------
# Persisted conversation document
# -----------------------------

class StoredMessage(CustomBaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    id: str
    parent_id: str = Field(..., alias="parentId")
    role: Literal["system", "user", "assistant"]
    content: str = ""
    author_name: str = Field("", alias="authorName")
    is_head: bool = Field(False, alias="isHead")

    @field_validator("content", "author_name", mode="before")
    @classmethod
    def _none_is_empty(cls, v: Optional[str]) -> str:
        return "" if v is None else v


class ConversationDocument(CustomBaseModel):
    profile: Profile = Field(default_factory=Profile)
    system: str = ""
    messages: List[StoredMessage] = Field(default_factory=list)

    @field_validator("system", mode="before")
    @classmethod
    def _none_is_empty(cls, v: Optional[str]) -> str:
        return "" if v is None else v
