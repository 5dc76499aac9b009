"""
Chat Run Store - Transcripts and Turn Alternation

WHAT: Owns every chat run, its append-only transcript and its pending request
WHERE: agentmesh/runtime/chat_runs.py - leaf of the orchestration stack
WHO: Callers submitting messages, the Oracle gateway applying callbacks
TIME: All operations O(1) apart from transcript snapshots (O(n) messages)

A run's transcript strictly alternates user/assistant starting with a user
message. A run has at most one outstanding Oracle request; its kind is the
run's ``pending`` tag, and the state machine is derived from it:

    pending None              -> AWAITING_CALLER_INPUT
    pending LLM               -> AWAITING_COMPLETION
    pending TOOL              -> AWAITING_TOOL
    pending KNOWLEDGE_BASE    -> AWAITING_KB_RESULT

Runs are never deleted; ids are indices into the run table.

Boundary Notes:
- Owner checks happen here; Oracle identity checks happen in the gateway
- Issuing requests is delegated to a dispatcher (the gateway), which tags
  ``pending`` through :meth:`ChatRunStore.begin_request`
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Callable, Optional

from .errors import AuthorizationError, ProtocolStateError, UnknownRunError
from .models import CompletionConfig

if TYPE_CHECKING:
    from .gateway import OracleGateway

logger = logging.getLogger(__name__)


class Role(str, Enum):
    USER = "User"
    ASSISTANT = "Assistant"


class RequestKind(str, Enum):
    LLM = "llm"
    TOOL = "tool"
    KNOWLEDGE_BASE = "knowledge_base"


class RunState(str, Enum):
    AWAITING_COMPLETION = "awaiting_completion"
    AWAITING_TOOL = "awaiting_tool"
    AWAITING_KB_RESULT = "awaiting_kb_result"
    AWAITING_CALLER_INPUT = "awaiting_caller_input"


_STATE_BY_KIND = {
    RequestKind.LLM: RunState.AWAITING_COMPLETION,
    RequestKind.TOOL: RunState.AWAITING_TOOL,
    RequestKind.KNOWLEDGE_BASE: RunState.AWAITING_KB_RESULT,
}


@dataclass(slots=True, frozen=True)
class Message:
    role: Role
    text: str


@dataclass(slots=True, frozen=True)
class PendingRequest:
    """Tag for the single outstanding Oracle request of a run.

    For tool requests ``tool_call_text`` keeps the assistant text that asked
    for the tool; it is transcribed once the tool result arrives.
    """

    kind: RequestKind
    tool_name: Optional[str] = None
    tool_args: str = ""
    tool_call_text: str = ""

    @classmethod
    def llm(cls) -> "PendingRequest":
        return cls(kind=RequestKind.LLM)

    @classmethod
    def knowledge_base(cls) -> "PendingRequest":
        return cls(kind=RequestKind.KNOWLEDGE_BASE)

    @classmethod
    def tool(cls, name: str, args: str = "", call_text: str = "") -> "PendingRequest":
        return cls(kind=RequestKind.TOOL, tool_name=name, tool_args=args, tool_call_text=call_text)


@dataclass(slots=True)
class ChatRun:
    run_id: int
    owner: str
    knowledge_base: str = ""
    config: CompletionConfig = field(default_factory=CompletionConfig)
    messages: list[Message] = field(default_factory=list)
    pending: Optional[PendingRequest] = None

    @property
    def state(self) -> RunState:
        if self.pending is None:
            return RunState.AWAITING_CALLER_INPUT
        return _STATE_BY_KIND[self.pending.kind]

    @property
    def last_role(self) -> Optional[Role]:
        return self.messages[-1].role if self.messages else None


class ChatRunStore:
    """Run table plus the transitions the turn-alternation protocol allows."""

    def __init__(
        self,
        dispatcher: "OracleGateway",
        *,
        knowledge_base: str = "",
        knowledge_base_top_k: int = 3,
        completion: CompletionConfig | None = None,
    ) -> None:
        self._dispatcher = dispatcher
        self._knowledge_base = knowledge_base
        self._top_k = knowledge_base_top_k
        self._completion = completion or CompletionConfig()
        self._runs: list[ChatRun] = []
        self._lock = threading.RLock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._runs)

    # ---------------------- caller operations ----------------------
    def start_run(
        self,
        owner: str,
        initial_text: str,
        *,
        knowledge_base: str | None = None,
        config: CompletionConfig | None = None,
        on_created: Callable[[int], None] | None = None,
    ) -> int:
        """Create a run with one user message and request its first completion.

        ``on_created`` runs before the request is dispatched, so correlations
        recorded there are visible to any callback for the run.
        """

        with self._lock:
            run = ChatRun(
                run_id=len(self._runs),
                owner=owner,
                knowledge_base=self._knowledge_base if knowledge_base is None else knowledge_base,
                config=config or self._completion,
            )
            self._append(run, Role.USER, initial_text)
            self._runs.append(run)
        logger.info(f"Started run {run.run_id} for owner {owner!r}")
        if on_created is not None:
            on_created(run.run_id)
        self._dispatcher.request_completion(run.run_id)
        return run.run_id

    def submit_message(self, run_id: int, owner: str, text: str) -> None:
        """Append a caller message and issue the next Oracle request."""

        with self._lock:
            run = self.get(run_id)
            if run.owner != owner:
                raise AuthorizationError(f"{owner!r} does not own run {run_id}")
            if run.pending is not None or run.last_role is not Role.ASSISTANT:
                raise ProtocolStateError(
                    f"Run {run_id} is {run.state.value}; no assistant reply to answer yet"
                )
            self._append(run, Role.USER, text)
            knowledge_base = run.knowledge_base

        if knowledge_base:
            self._dispatcher.request_knowledge_base(run_id, knowledge_base, text, self._top_k)
        else:
            self._dispatcher.request_completion(run_id)

    def history(self, run_id: int) -> tuple[Message, ...]:
        with self._lock:
            return tuple(self.get(run_id).messages)

    def render_messages(self, run_id: int) -> list[dict[str, str]]:
        """Transcript in provider chat format with lower-case roles."""

        return [{"role": m.role.value.lower(), "content": m.text} for m in self.history(run_id)]

    def state(self, run_id: int) -> RunState:
        with self._lock:
            return self.get(run_id).state

    def get(self, run_id: int) -> ChatRun:
        with self._lock:
            if not 0 <= run_id < len(self._runs):
                raise UnknownRunError(f"Unknown run {run_id}")
            return self._runs[run_id]

    # ---------------------- gateway transitions ----------------------
    def begin_request(self, run_id: int, pending: PendingRequest) -> ChatRun:
        """Tag a new outstanding request; a run never has two."""

        with self._lock:
            run = self.get(run_id)
            if run.pending is not None:
                raise ProtocolStateError(
                    f"Run {run_id} already awaits a {run.pending.kind.value} result"
                )
            run.pending = pending
            return run

    def finish_request(self, run_id: int, kind: RequestKind) -> PendingRequest:
        """Clear the outstanding request, which must be of ``kind``."""

        with self._lock:
            run = self.get(run_id)
            expected = _STATE_BY_KIND[kind]
            if run.pending is None or run.pending.kind is not kind:
                raise ProtocolStateError(
                    f"Run {run_id} is {run.state.value}, expected {expected.value}"
                )
            pending = run.pending
            run.pending = None
            return pending

    def append_assistant(self, run_id: int, text: str) -> Message:
        with self._lock:
            return self._append(self.get(run_id), Role.ASSISTANT, text)

    def append_user(self, run_id: int, text: str) -> Message:
        with self._lock:
            return self._append(self.get(run_id), Role.USER, text)

    def amend_last_user(self, run_id: int, suffix: str) -> Message:
        """Extend the most recent user message in place."""

        with self._lock:
            run = self.get(run_id)
            if run.last_role is not Role.USER:
                raise ProtocolStateError(f"Run {run_id} has no trailing user message to amend")
            amended = Message(role=Role.USER, text=run.messages[-1].text + suffix)
            run.messages[-1] = amended
            return amended

    def _append(self, run: ChatRun, role: Role, text: str) -> Message:
        expected = Role.USER if run.last_role in (None, Role.ASSISTANT) else Role.ASSISTANT
        if role is not expected:
            raise ProtocolStateError(
                f"Run {run.run_id} expects a {expected.value} message next, got {role.value}"
            )
        message = Message(role=role, text=text)
        run.messages.append(message)
        return message


__all__ = [
    "ChatRun",
    "ChatRunStore",
    "Message",
    "PendingRequest",
    "RequestKind",
    "Role",
    "RunState",
]
