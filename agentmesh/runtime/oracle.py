"""
In-process Oracle adapters.

``QueueOracleClient`` is an :class:`~agentmesh.runtime.gateway.OracleClient`
that parks submitted requests in FIFO order. ``OracleWorker`` services such a
queue with plain provider callables and answers through the gateway callbacks
as the trusted Oracle identity. Provider exceptions become callback errors, so
they end up in the affected transcript instead of propagating.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from typing import Any, Callable, Deque, Optional, Protocol, Sequence, Union

from .gateway import CompletionRequest, KnowledgeBaseRequest, OracleRequest, ToolRequest
from .models import OracleResponse

logger = logging.getLogger(__name__)

CompletionProvider = Callable[[CompletionRequest], Union[OracleResponse, str]]
ToolProvider = Callable[[str, str], str]
KnowledgeBaseProvider = Callable[[str, str, int], Sequence[str]]


class OracleCallbacks(Protocol):
    def on_completion(self, run_id: int, response: OracleResponse, error: str = "", *, caller: str) -> None:
        ...

    def on_tool_result(self, run_id: int, output: str, error: str = "", *, caller: str) -> None:
        ...

    def on_knowledge_base_result(
        self, run_id: int, documents: Sequence[str], error: str = "", *, caller: str
    ) -> None:
        ...


class QueueOracleClient:
    """Collects requests until someone drains them."""

    def __init__(self) -> None:
        self._queue: Deque[OracleRequest] = deque()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._queue)

    def submit(self, request: OracleRequest) -> None:
        with self._lock:
            self._queue.append(request)

    def pop(self) -> Optional[OracleRequest]:
        with self._lock:
            return self._queue.popleft() if self._queue else None

    def pending(self) -> tuple[OracleRequest, ...]:
        with self._lock:
            return tuple(self._queue)

    def drain(self) -> list[OracleRequest]:
        with self._lock:
            drained = list(self._queue)
            self._queue.clear()
        return drained


def _as_response(result: Any) -> OracleResponse:
    if isinstance(result, OracleResponse):
        return result
    if isinstance(result, str):
        return OracleResponse(content=result)
    return OracleResponse.model_validate(result)


class OracleWorker:
    """Answers queued requests with provider callables."""

    def __init__(
        self,
        client: QueueOracleClient,
        callbacks: OracleCallbacks,
        *,
        identity: str,
        complete: CompletionProvider,
        call_tool: ToolProvider | None = None,
        query_knowledge_base: KnowledgeBaseProvider | None = None,
    ) -> None:
        self._client = client
        self._callbacks = callbacks
        self._identity = identity
        self._complete = complete
        self._call_tool = call_tool
        self._query_knowledge_base = query_knowledge_base

    def step(self) -> bool:
        """Service one request; return False when the queue is empty."""

        request = self._client.pop()
        if request is None:
            return False
        if isinstance(request, CompletionRequest):
            self._handle_completion(request)
        elif isinstance(request, ToolRequest):
            self._handle_tool(request)
        elif isinstance(request, KnowledgeBaseRequest):
            self._handle_knowledge_base(request)
        else:
            raise TypeError(f"Unsupported Oracle request {request!r}")
        return True

    def run_until_idle(self, *, max_steps: int = 100) -> int:
        """Service requests until none remain or ``max_steps`` is reached."""

        steps = 0
        while steps < max_steps and self.step():
            steps += 1
        if steps == max_steps and len(self._client):
            logger.warning(f"Oracle worker stopped after {max_steps} steps with {len(self._client)} queued")
        return steps

    def _handle_completion(self, request: CompletionRequest) -> None:
        try:
            response = _as_response(self._complete(request))
        except Exception as exc:
            logger.error(f"Completion provider failed for run {request.run_id}: {exc}")
            self._callbacks.on_completion(request.run_id, OracleResponse(), str(exc), caller=self._identity)
            return
        self._callbacks.on_completion(request.run_id, response, caller=self._identity)

    def _handle_tool(self, request: ToolRequest) -> None:
        if self._call_tool is None:
            self._callbacks.on_tool_result(
                request.run_id, "", f"No tool executor configured for {request.name!r}", caller=self._identity
            )
            return
        try:
            output = self._call_tool(request.name, request.arguments)
        except Exception as exc:
            logger.error(f"Tool {request.name!r} failed for run {request.run_id}: {exc}")
            self._callbacks.on_tool_result(request.run_id, "", str(exc), caller=self._identity)
            return
        self._callbacks.on_tool_result(request.run_id, output, caller=self._identity)

    def _handle_knowledge_base(self, request: KnowledgeBaseRequest) -> None:
        if self._query_knowledge_base is None:
            self._callbacks.on_knowledge_base_result(
                request.run_id, [], "No knowledge base provider configured", caller=self._identity
            )
            return
        try:
            documents = list(
                self._query_knowledge_base(request.knowledge_base, request.query, request.top_k)
            )
        except Exception as exc:
            logger.error(f"Knowledge base {request.knowledge_base!r} failed for run {request.run_id}: {exc}")
            self._callbacks.on_knowledge_base_result(request.run_id, [], str(exc), caller=self._identity)
            return
        self._callbacks.on_knowledge_base_result(request.run_id, documents, caller=self._identity)


__all__ = [
    "QueueOracleClient",
    "OracleWorker",
    "OracleCallbacks",
    "CompletionProvider",
    "ToolProvider",
    "KnowledgeBaseProvider",
]
