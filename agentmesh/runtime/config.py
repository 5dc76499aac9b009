"""
Runtime configuration.

Defaults live on :class:`OrchestratorConfig`; :func:`resolve_config` layers
``AGENTMESH_*`` environment variables on top, mirroring how the persistence
clients resolve their connection settings.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Mapping

from .models import CompletionConfig

ACTOR_LIMIT = 2
MESSAGE_LIMIT = 5
DEFAULT_KB_TOP_K = 3


@dataclass(slots=True)
class OrchestratorConfig:
    actor_limit: int = ACTOR_LIMIT
    message_limit: int = MESSAGE_LIMIT
    oracle_identity: str = "oracle"
    system_owner: str = "orchestrator"
    knowledge_base: str = ""
    knowledge_base_top_k: int = DEFAULT_KB_TOP_K
    completion: CompletionConfig = field(default_factory=CompletionConfig)


def _int_env(env: Mapping[str, str], key: str, default: int) -> int:
    raw = env.get(key)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"{key} must be an integer, got {raw!r}") from exc


def resolve_config(env: Mapping[str, str] | None = None) -> OrchestratorConfig:
    """Build a config from environment variables, falling back to defaults."""

    source = os.environ if env is None else env
    completion = CompletionConfig()
    model = source.get("AGENTMESH_MODEL")
    if model:
        completion = completion.model_copy(update={"model": model})
    return OrchestratorConfig(
        actor_limit=_int_env(source, "AGENTMESH_ACTOR_LIMIT", ACTOR_LIMIT),
        message_limit=_int_env(source, "AGENTMESH_MESSAGE_LIMIT", MESSAGE_LIMIT),
        oracle_identity=source.get("AGENTMESH_ORACLE_IDENTITY", "oracle"),
        system_owner=source.get("AGENTMESH_SYSTEM_OWNER", "orchestrator"),
        knowledge_base=source.get("AGENTMESH_KNOWLEDGE_BASE", ""),
        knowledge_base_top_k=_int_env(source, "AGENTMESH_KB_TOP_K", DEFAULT_KB_TOP_K),
        completion=completion,
    )


__all__ = [
    "ACTOR_LIMIT",
    "MESSAGE_LIMIT",
    "DEFAULT_KB_TOP_K",
    "OrchestratorConfig",
    "resolve_config",
]
