"""
Orchestrator - Central Composition Point

WHAT: Facade wiring run store, actor registry, command interpreter and gateway
WHERE: agentmesh/runtime/orchestrator.py - top of the runtime stack
WHO: Entry point for callers and for whatever transport delivers Oracle callbacks
TIME: Adds no latency of its own; every call delegates to one component

The orchestrator owns no state. It routes plain completion text from the
gateway through the command interpreter, so directives in a completion take
effect before that completion is appended to its transcript.

Boundary Notes:
- Run-owner checks are enforced by the run store
- Oracle identity checks are enforced by the gateway
"""

from __future__ import annotations

import logging
import threading
from typing import Optional, Sequence

from .actors import ActorInfo, ActorRegistry
from .chat_runs import ChatRunStore, Message, RunState
from .commands import CommandInterpreter, InterpretationResult
from .config import OrchestratorConfig
from .gateway import OracleClient, OracleGateway, OracleRequest
from .models import CompletionConfig, OracleResponse
from .telemetry import NoOpTelemetryClient, TelemetryClient

logger = logging.getLogger(__name__)


class Orchestrator:
    """Facade over the multi-agent chat runtime."""

    def __init__(
        self,
        client: OracleClient,
        *,
        config: OrchestratorConfig | None = None,
        telemetry: TelemetryClient | None = None,
    ) -> None:
        cfg = config or OrchestratorConfig()
        self._config = cfg
        self._telemetry = telemetry or NoOpTelemetryClient()
        self._gateway = OracleGateway(
            client,
            oracle_identity=cfg.oracle_identity,
            telemetry=self._telemetry,
        )
        self._store = ChatRunStore(
            self._gateway,
            knowledge_base=cfg.knowledge_base,
            knowledge_base_top_k=cfg.knowledge_base_top_k,
            completion=cfg.completion,
        )
        self._registry = ActorRegistry(
            self._store,
            owner=cfg.system_owner,
            spawn_limit=cfg.actor_limit,
            message_limit=cfg.message_limit,
        )
        self._interpreter = CommandInterpreter(self._registry)
        self._gateway.attach(self._store, on_content=self._interpret)
        self._interpretations: dict[int, InterpretationResult] = {}
        self._interpretations_lock = threading.Lock()

    @property
    def config(self) -> OrchestratorConfig:
        return self._config

    @property
    def store(self) -> ChatRunStore:
        return self._store

    @property
    def registry(self) -> ActorRegistry:
        return self._registry

    @property
    def gateway(self) -> OracleGateway:
        return self._gateway

    @property
    def telemetry(self) -> TelemetryClient:
        return self._telemetry

    def last_interpretation(self, run_id: int) -> Optional[InterpretationResult]:
        """Directive outcome of the most recent plain completion on ``run_id``."""

        with self._interpretations_lock:
            return self._interpretations.get(run_id)

    # ---------------------- runs ----------------------
    def start_run(
        self,
        owner: str,
        initial_text: str,
        *,
        knowledge_base: str | None = None,
        config: CompletionConfig | None = None,
    ) -> int:
        return self._store.start_run(owner, initial_text, knowledge_base=knowledge_base, config=config)

    def submit_message(self, run_id: int, owner: str, text: str) -> None:
        self._store.submit_message(run_id, owner, text)

    def history(self, run_id: int) -> tuple[Message, ...]:
        return self._store.history(run_id)

    def run_state(self, run_id: int) -> RunState:
        return self._store.state(run_id)

    def pending_request(self, run_id: int) -> Optional[OracleRequest]:
        return self._gateway.outstanding(run_id)

    # ---------------------- actors ----------------------
    def create_actor(self, system_prompt: str, initial_context: str = "") -> int:
        return self._registry.create_actor(system_prompt, initial_context)

    def message_actor(self, actor_id: int, text: str) -> int:
        return self._registry.message_actor(actor_id, text)

    def introspect(self, actor_id: int, new_context: str) -> None:
        self._registry.introspect(actor_id, new_context)

    def actor_info(self, actor_id: int) -> ActorInfo:
        return self._registry.info(actor_id)

    def all_actor_info(self) -> list[ActorInfo]:
        return self._registry.all_info()

    def run_actor(self, run_id: int) -> Optional[int]:
        return self._registry.actor_for_run(run_id)

    def run_origin(self, run_id: int) -> Optional[int]:
        return self._registry.origin_of(run_id)

    # ---------------------- Oracle callbacks ----------------------
    def on_completion(self, run_id: int, response: OracleResponse, error: str = "", *, caller: str) -> None:
        self._gateway.on_completion(run_id, response, error, caller=caller)

    def on_tool_result(self, run_id: int, output: str, error: str = "", *, caller: str) -> None:
        self._gateway.on_tool_result(run_id, output, error, caller=caller)

    def on_knowledge_base_result(
        self,
        run_id: int,
        documents: Sequence[str],
        error: str = "",
        *,
        caller: str,
    ) -> None:
        self._gateway.on_knowledge_base_result(run_id, documents, error, caller=caller)

    def _interpret(self, run_id: int, text: str) -> InterpretationResult:
        with self._telemetry.span("commands.interpret", attributes={"run_id": run_id}) as span:
            result = self._interpreter.interpret(run_id, text)
            span.set_attribute("acting_actor", result.acting_actor)
            span.set_attribute("applied", len(result.applied))
            span.set_attribute("skipped", len(result.skipped))
            span.set_attribute("malformed", len(result.malformed))
        if result.applied or result.skipped or result.malformed:
            logger.info(
                f"Run {run_id}: applied {len(result.applied)}, skipped {len(result.skipped)}, "
                f"malformed {len(result.malformed)} directive(s)"
            )
        with self._interpretations_lock:
            self._interpretations[run_id] = result
        return result
