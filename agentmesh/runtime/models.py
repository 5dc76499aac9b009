"""
Oracle Wire Models - Completion parameters and response records

WHAT: Pydantic models for the data exchanged with the Oracle
WHERE: agentmesh/runtime/models.py - data layer shared by gateway and adapters
WHO: Gateway (outbound config), Oracle adapters (inbound responses)
TIME: Model validation <1ms

The Oracle speaks an integer-only parameter encoding inherited from its
on-chain origin. Optional parameters are never omitted on the wire; instead
each carries a sentinel meaning "unset":

- frequency/presence penalty: -20..20 in tenths, anything above 20 = unset
- temperature: 0..20 in tenths (10 = 1.0), anything above 20 = unset
- top_p: 0..100 in hundredths, anything above 100 = unset
- seed, max_tokens: 0 = unset
- free-text fields: "" = unset

Boundary Notes:
- Sentinel values must round-trip exactly; never normalise them away
- ``to_provider_params`` is the only place sentinels are interpreted
"""

from __future__ import annotations

import json
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

PENALTY_DISABLED = 21
TEMPERATURE_DISABLED = 21
TOP_P_DISABLED = 101
DEFAULT_RESPONSE_FORMAT = '{"type":"text"}'


class CompletionConfig(BaseModel):
    """Model parameters attached to every completion request."""

    model: str = "claude-3-5-sonnet-20240620"
    frequency_penalty: int = Field(default=PENALTY_DISABLED, ge=-20, le=PENALTY_DISABLED)
    logit_bias: str = ""
    max_tokens: int = Field(default=1000, ge=0)
    presence_penalty: int = Field(default=PENALTY_DISABLED, ge=-20, le=PENALTY_DISABLED)
    response_format: str = DEFAULT_RESPONSE_FORMAT
    seed: int = Field(default=0, ge=0)
    stop: str = ""
    temperature: int = Field(default=10, ge=0, le=TEMPERATURE_DISABLED)
    top_p: int = Field(default=TOP_P_DISABLED, ge=0, le=TOP_P_DISABLED)
    tools: str = ""
    tool_choice: str = ""
    user: str = ""

    model_config = ConfigDict(frozen=True, protected_namespaces=())

    @field_validator("logit_bias", "response_format", "tools")
    @classmethod
    def _validate_json_text(cls, value: str) -> str:
        """Free-text JSON fields must be empty or decode cleanly."""

        if value:
            try:
                json.loads(value)
            except json.JSONDecodeError as exc:
                raise ValueError(f"expected JSON text, got {value!r}") from exc
        return value

    def to_provider_params(self) -> Dict[str, Any]:
        """Translate the sentinel encoding into provider keyword arguments."""

        params: Dict[str, Any] = {"model": self.model}
        if self.frequency_penalty <= 20:
            params["frequency_penalty"] = self.frequency_penalty / 10
        if self.presence_penalty <= 20:
            params["presence_penalty"] = self.presence_penalty / 10
        if self.temperature <= 20:
            params["temperature"] = self.temperature / 10
        if self.top_p <= 100:
            params["top_p"] = self.top_p / 100
        if self.max_tokens:
            params["max_tokens"] = self.max_tokens
        if self.seed:
            params["seed"] = self.seed
        for key in ("logit_bias", "response_format", "tools"):
            raw = getattr(self, key)
            if raw:
                params[key] = json.loads(raw)
        for key in ("stop", "tool_choice", "user"):
            raw = getattr(self, key)
            if raw:
                params[key] = raw
        return params


class OracleResponse(BaseModel):
    """LLM response record posted back by the Oracle.

    Field aliases follow the Oracle's camelCase record so payloads can be
    validated straight from the wire.
    """

    id: str = ""
    content: str = ""
    function_name: str = Field(default="", alias="functionName")
    function_arguments: str = Field(default="", alias="functionArguments")
    created: int = 0
    model: str = ""
    system_fingerprint: str = Field(default="", alias="systemFingerprint")
    object: str = "chat.completion"
    completion_tokens: int = Field(default=0, ge=0, alias="completionTokens")
    prompt_tokens: int = Field(default=0, ge=0, alias="promptTokens")
    total_tokens: int = Field(default=0, ge=0, alias="totalTokens")

    model_config = ConfigDict(populate_by_name=True, protected_namespaces=())

    @property
    def tool_name(self) -> Optional[str]:
        return self.function_name or None

    @property
    def tool_args(self) -> str:
        return self.function_arguments


__all__ = [
    "CompletionConfig",
    "OracleResponse",
    "PENALTY_DISABLED",
    "TEMPERATURE_DISABLED",
    "TOP_P_DISABLED",
    "DEFAULT_RESPONSE_FORMAT",
]
