"""
Multi-agent Chat Runtime - Runs, Actors, Directives & Oracle Correlation

WHAT: In-process control core for agents that converse through an async Oracle
WHERE: agentmesh/runtime/ - everything between callers and the Oracle transport
WHO: Applications embedding the orchestrator; Oracle transports posting callbacks
TIME: Non-blocking; each run resumes only when its Oracle callback arrives

Components (leaves first):
- chat_runs: append-only transcripts with strict user/assistant alternation
- actors: actor records (system prompt, context, spawned runs) and spawning
- commands: ``|COMMAND|<verb>|...|`` directive parsing under per-response caps
- gateway: outbound Oracle requests and authenticated inbound callbacks
- orchestrator: facade composing the above

Adapters:
- oracle: queue-backed client and a worker driving provider callables
- telemetry: span clients for callback and directive instrumentation
"""

from .actors import ActorInfo, ActorRegistry  # noqa: F401
from .chat_runs import ChatRunStore, Message, RequestKind, Role, RunState  # noqa: F401
from .commands import (  # noqa: F401
    CommandInterpreter,
    CreateDirective,
    InterpretationResult,
    IntrospectDirective,
    MessageDirective,
    parse_directives,
)
from .config import OrchestratorConfig, resolve_config  # noqa: F401
from .errors import (  # noqa: F401
    AuthorizationError,
    MalformedDirective,
    OrchestratorError,
    ProtocolStateError,
    UnknownActorError,
    UnknownRunError,
)
from .gateway import (  # noqa: F401
    CompletionRequest,
    KnowledgeBaseRequest,
    OracleClient,
    OracleGateway,
    ToolRequest,
)
from .models import CompletionConfig, OracleResponse  # noqa: F401
from .oracle import OracleWorker, QueueOracleClient  # noqa: F401
from .orchestrator import Orchestrator  # noqa: F401
from .telemetry import (  # noqa: F401
    LoggingTelemetryClient,
    NoOpTelemetryClient,
    RecordingTelemetryClient,
    TelemetryClient,
    TelemetrySpan,
)

__all__ = [
    "ActorInfo",
    "ActorRegistry",
    "ChatRunStore",
    "Message",
    "RequestKind",
    "Role",
    "RunState",
    "CommandInterpreter",
    "CreateDirective",
    "InterpretationResult",
    "IntrospectDirective",
    "MessageDirective",
    "parse_directives",
    "OrchestratorConfig",
    "resolve_config",
    "AuthorizationError",
    "MalformedDirective",
    "OrchestratorError",
    "ProtocolStateError",
    "UnknownActorError",
    "UnknownRunError",
    "CompletionRequest",
    "KnowledgeBaseRequest",
    "OracleClient",
    "OracleGateway",
    "ToolRequest",
    "CompletionConfig",
    "OracleResponse",
    "OracleWorker",
    "QueueOracleClient",
    "Orchestrator",
    "LoggingTelemetryClient",
    "NoOpTelemetryClient",
    "RecordingTelemetryClient",
    "TelemetryClient",
    "TelemetrySpan",
]
