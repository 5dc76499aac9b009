"""
Oracle Gateway - Request Issuance and Callback Correlation

WHAT: Issues completion/tool/knowledge-base requests and applies their callbacks
WHERE: agentmesh/runtime/gateway.py - boundary between the runtime and the Oracle
WHO: Chat run store (outbound), Oracle adapters (inbound callbacks)
TIME: Non-blocking; requests are handed to a client and resumed by callback

The gateway never waits for the Oracle. Each request is an immutable record
with a monotonically assigned ``request_id``; the Oracle later answers by run
id through one of the ``on_*`` callbacks. Every callback must come from the
trusted Oracle identity and must match the run's outstanding request kind.

Callback outcomes:
- completion with error     -> error text appended as assistant message
- completion naming a tool  -> tool request issued, transcript untouched
- plain completion          -> directives interpreted, content appended
- tool result               -> assistant tool call + user tool output, new completion
- knowledge-base result     -> documents appended to last user message, new completion
- transport refuses request -> pending tag cleared, failure appended as assistant message
"""

from __future__ import annotations

import itertools
import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Optional, Protocol, Sequence

from .chat_runs import ChatRunStore, PendingRequest, RequestKind
from .errors import AuthorizationError, OrchestratorError
from .models import CompletionConfig, OracleResponse
from .telemetry import NoOpTelemetryClient, TelemetryClient

logger = logging.getLogger(__name__)

KNOWLEDGE_BASE_HEADER = "\n\nRelevant context:\n"
DISPATCH_FAILURE_PREFIX = "Oracle request failed: "


@dataclass(slots=True, frozen=True)
class CompletionRequest:
    request_id: int
    run_id: int
    messages: tuple[dict[str, str], ...]
    config: CompletionConfig

    kind = RequestKind.LLM


@dataclass(slots=True, frozen=True)
class ToolRequest:
    request_id: int
    run_id: int
    name: str
    arguments: str

    kind = RequestKind.TOOL


@dataclass(slots=True, frozen=True)
class KnowledgeBaseRequest:
    request_id: int
    run_id: int
    knowledge_base: str
    query: str
    top_k: int

    kind = RequestKind.KNOWLEDGE_BASE


OracleRequest = CompletionRequest | ToolRequest | KnowledgeBaseRequest


class OracleClient(Protocol):
    """Transport that delivers requests to the Oracle without blocking."""

    def submit(self, request: OracleRequest) -> None:
        """Hand one request to the Oracle."""


ContentHandler = Callable[[int, str], Any]


def format_knowledge_context(documents: Sequence[str]) -> str:
    return KNOWLEDGE_BASE_HEADER + "".join(f"{doc}\n" for doc in documents)


def describe_tool_call(name: str, arguments: str) -> str:
    return f"[tool call] {name}({arguments})"


class OracleGateway:
    """Outbound request issuance plus authenticated, state-checked callbacks."""

    def __init__(
        self,
        client: OracleClient,
        *,
        oracle_identity: str = "oracle",
        telemetry: TelemetryClient | None = None,
    ) -> None:
        self._client = client
        self._oracle_identity = oracle_identity
        self._telemetry = telemetry or NoOpTelemetryClient()
        self._store: Optional[ChatRunStore] = None
        self._on_content: Optional[ContentHandler] = None
        self._request_ids = itertools.count()
        self._outstanding: dict[int, OracleRequest] = {}
        self._lock = threading.Lock()

    def attach(self, store: ChatRunStore, *, on_content: ContentHandler | None = None) -> None:
        """Bind the run store and the handler for plain completion text."""

        self._store = store
        self._on_content = on_content

    @property
    def store(self) -> ChatRunStore:
        if self._store is None:
            raise OrchestratorError("Oracle gateway used before a run store was attached")
        return self._store

    def outstanding(self, run_id: int) -> Optional[OracleRequest]:
        with self._lock:
            return self._outstanding.get(run_id)

    # ---------------------- outbound ----------------------
    def request_completion(self, run_id: int, config: CompletionConfig | None = None) -> CompletionRequest:
        run = self.store.begin_request(run_id, PendingRequest.llm())
        request = CompletionRequest(
            request_id=next(self._request_ids),
            run_id=run_id,
            messages=tuple(self.store.render_messages(run_id)),
            config=config or run.config,
        )
        self._submit(request)
        return request

    def request_tool(self, run_id: int, name: str, arguments: str, *, call_text: str = "") -> ToolRequest:
        self.store.begin_request(run_id, PendingRequest.tool(name, arguments, call_text))
        request = ToolRequest(
            request_id=next(self._request_ids),
            run_id=run_id,
            name=name,
            arguments=arguments,
        )
        self._submit(request)
        return request

    def request_knowledge_base(
        self,
        run_id: int,
        knowledge_base: str,
        query: str,
        top_k: int,
    ) -> KnowledgeBaseRequest:
        self.store.begin_request(run_id, PendingRequest.knowledge_base())
        request = KnowledgeBaseRequest(
            request_id=next(self._request_ids),
            run_id=run_id,
            knowledge_base=knowledge_base,
            query=query,
            top_k=top_k,
        )
        self._submit(request)
        return request

    def _submit(self, request: OracleRequest) -> None:
        with self._lock:
            self._outstanding[request.run_id] = request
        logger.debug(f"Submitting {request.kind.value} request {request.request_id} for run {request.run_id}")
        try:
            self._client.submit(request)
        except Exception as exc:
            logger.exception(f"Failed to submit {request.kind.value} request {request.request_id}")
            self._settle(request.run_id)
            self.store.finish_request(request.run_id, request.kind)
            # Every request follows a user turn, so the run can always be closed here
            self.store.append_assistant(request.run_id, f"{DISPATCH_FAILURE_PREFIX}{exc}")

    # ---------------------- inbound ----------------------
    def on_completion(self, run_id: int, response: OracleResponse, error: str = "", *, caller: str) -> None:
        self._authenticate(caller)
        with self._telemetry.span("oracle.on_completion", attributes={"run_id": run_id}) as span:
            self.store.finish_request(run_id, RequestKind.LLM)
            self._settle(run_id)
            if error:
                logger.warning(f"Oracle reported completion error for run {run_id}: {error}")
                self.store.append_assistant(run_id, error)
                span.set_attribute("outcome", "error")
                return
            if response.tool_name:
                self.request_tool(
                    run_id,
                    response.tool_name,
                    response.tool_args,
                    call_text=response.content,
                )
                span.set_attribute("outcome", "tool" if self.outstanding(run_id) else "dispatch_failed")
                return
            if self._on_content is not None:
                try:
                    self._on_content(run_id, response.content)
                except Exception as exc:
                    logger.exception(f"Content handler failed for run {run_id}; appending reply anyway")
                    span.set_attribute("content_error", type(exc).__name__)
            self.store.append_assistant(run_id, response.content)
            span.set_attribute("outcome", "reply")
            span.set_attribute("response_chars", len(response.content))

    def on_tool_result(self, run_id: int, output: str, error: str = "", *, caller: str) -> None:
        self._authenticate(caller)
        with self._telemetry.span("oracle.on_tool_result", attributes={"run_id": run_id}) as span:
            pending = self.store.finish_request(run_id, RequestKind.TOOL)
            self._settle(run_id)
            call_text = pending.tool_call_text or describe_tool_call(pending.tool_name or "", pending.tool_args)
            self.store.append_assistant(run_id, call_text)
            if error:
                logger.warning(f"Tool {pending.tool_name!r} failed for run {run_id}: {error}")
                span.set_attribute("outcome", "error")
                self.store.append_user(run_id, error)
            else:
                span.set_attribute("outcome", "result")
                self.store.append_user(run_id, output)
            self.request_completion(run_id)

    def on_knowledge_base_result(
        self,
        run_id: int,
        documents: Sequence[str],
        error: str = "",
        *,
        caller: str,
    ) -> None:
        self._authenticate(caller)
        with self._telemetry.span(
            "oracle.on_knowledge_base_result",
            attributes={"run_id": run_id, "document_count": len(documents)},
        ) as span:
            self.store.finish_request(run_id, RequestKind.KNOWLEDGE_BASE)
            self._settle(run_id)
            if error:
                logger.warning(f"Knowledge base query failed for run {run_id}: {error}")
                span.set_attribute("outcome", "error")
            elif documents:
                self.store.amend_last_user(run_id, format_knowledge_context(documents))
                span.set_attribute("outcome", "context")
            else:
                span.set_attribute("outcome", "empty")
            self.request_completion(run_id)

    def _settle(self, run_id: int) -> None:
        with self._lock:
            self._outstanding.pop(run_id, None)

    def _authenticate(self, caller: str) -> None:
        if caller != self._oracle_identity:
            raise AuthorizationError(f"{caller!r} is not the trusted Oracle")


__all__ = [
    "CompletionRequest",
    "ToolRequest",
    "KnowledgeBaseRequest",
    "OracleRequest",
    "OracleClient",
    "OracleGateway",
    "KNOWLEDGE_BASE_HEADER",
    "DISPATCH_FAILURE_PREFIX",
    "format_knowledge_context",
    "describe_tool_call",
]
