import pytest

from agentmesh.runtime.chat_runs import ChatRunStore, RequestKind, Role, RunState
from agentmesh.runtime.errors import AuthorizationError, ProtocolStateError
from agentmesh.runtime.gateway import DISPATCH_FAILURE_PREFIX, CompletionRequest, OracleGateway, ToolRequest
from agentmesh.runtime.models import OracleResponse
from agentmesh.runtime.oracle import QueueOracleClient
from agentmesh.runtime.telemetry import RecordingTelemetryClient


def make_gateway(*, on_content=None, telemetry=None, **store_kwargs):
    client = QueueOracleClient()
    gateway = OracleGateway(client, oracle_identity="oracle", telemetry=telemetry)
    store = ChatRunStore(gateway, **store_kwargs)
    gateway.attach(store, on_content=on_content)
    return gateway, store, client


def test_callback_from_untrusted_caller_is_rejected():
    gateway, store, _ = make_gateway()
    run_id = store.start_run("alice", "hello")

    with pytest.raises(AuthorizationError):
        gateway.on_completion(run_id, OracleResponse(content="spoof"), caller="alice")
    assert store.state(run_id) is RunState.AWAITING_COMPLETION
    assert len(store.history(run_id)) == 1


def test_callback_in_wrong_state_is_rejected():
    gateway, store, _ = make_gateway()
    run_id = store.start_run("alice", "hello")
    gateway.on_completion(run_id, OracleResponse(content="hi"), caller="oracle")

    with pytest.raises(ProtocolStateError):
        gateway.on_completion(run_id, OracleResponse(content="again"), caller="oracle")
    with pytest.raises(ProtocolStateError):
        gateway.on_tool_result(run_id, "output", caller="oracle")


def test_completion_error_is_written_to_transcript():
    gateway, store, _ = make_gateway()
    run_id = store.start_run("alice", "hello")

    gateway.on_completion(run_id, OracleResponse(), "rate limited", caller="oracle")

    last = store.history(run_id)[-1]
    assert last.role is Role.ASSISTANT
    assert last.text == "rate limited"
    assert store.state(run_id) is RunState.AWAITING_CALLER_INPUT


def test_plain_completion_is_interpreted_before_append():
    seen = []
    gateway = None

    def on_content(run_id, text):
        seen.append((run_id, text, gateway.store.history(run_id)[-1].role))

    gateway, store, _ = make_gateway(on_content=on_content)
    run_id = store.start_run("alice", "hello")
    gateway.on_completion(run_id, OracleResponse(content="|COMMAND|introspect|x| hi"), caller="oracle")

    assert seen == [(run_id, "|COMMAND|introspect|x| hi", Role.USER)]
    assert store.history(run_id)[-1].text == "|COMMAND|introspect|x| hi"
    assert gateway.outstanding(run_id) is None


def test_tool_call_defers_transcript_and_requests_tool():
    gateway, store, client = make_gateway()
    run_id = store.start_run("alice", "what is 2+2?")
    client.drain()

    response = OracleResponse(functionName="calculator", functionArguments='{"expr": "2+2"}')
    gateway.on_completion(run_id, response, caller="oracle")

    assert store.state(run_id) is RunState.AWAITING_TOOL
    assert len(store.history(run_id)) == 1
    (request,) = client.drain()
    assert isinstance(request, ToolRequest)
    assert request.name == "calculator"
    assert request.arguments == '{"expr": "2+2"}'
    assert gateway.outstanding(run_id) == request


def test_tool_result_appends_output_and_requests_completion():
    gateway, store, client = make_gateway()
    run_id = store.start_run("alice", "what is 2+2?")
    gateway.on_completion(
        run_id,
        OracleResponse(function_name="calculator", function_arguments="2+2"),
        caller="oracle",
    )
    client.drain()

    gateway.on_tool_result(run_id, "4", caller="oracle")

    history = store.history(run_id)
    assert [m.role for m in history] == [Role.USER, Role.ASSISTANT, Role.USER]
    assert history[1].text == "[tool call] calculator(2+2)"
    assert history[-1].text == "4"
    assert store.state(run_id) is RunState.AWAITING_COMPLETION
    (request,) = client.drain()
    assert isinstance(request, CompletionRequest)
    assert request.messages[-1] == {"role": "user", "content": "4"}


def test_tool_error_is_surfaced_as_user_message():
    gateway, store, _ = make_gateway()
    run_id = store.start_run("alice", "search please")
    gateway.on_completion(
        run_id,
        OracleResponse(content="Let me search.", function_name="search", function_arguments="{}"),
        caller="oracle",
    )

    gateway.on_tool_result(run_id, "", "search backend offline", caller="oracle")

    history = store.history(run_id)
    assert history[1].text == "Let me search."
    assert history[-1].text == "search backend offline"
    assert store.state(run_id) is RunState.AWAITING_COMPLETION


def _run_awaiting_knowledge_base(gateway, store, client):
    run_id = store.start_run("alice", "hello")
    gateway.on_completion(run_id, OracleResponse(content="hi"), caller="oracle")
    store.submit_message(run_id, "alice", "question")
    client.drain()
    return run_id


def test_knowledge_base_documents_extend_last_user_message():
    gateway, store, client = make_gateway(knowledge_base="kb")
    run_id = _run_awaiting_knowledge_base(gateway, store, client)

    gateway.on_knowledge_base_result(run_id, ["doc1", "doc2"], caller="oracle")

    history = store.history(run_id)
    assert len(history) == 3
    assert history[-1].role is Role.USER
    assert history[-1].text == "question\n\nRelevant context:\ndoc1\ndoc2\n"
    (request,) = client.drain()
    assert isinstance(request, CompletionRequest)
    assert store.state(run_id) is RunState.AWAITING_COMPLETION


def test_empty_knowledge_base_result_still_requests_completion():
    gateway, store, client = make_gateway(knowledge_base="kb")
    run_id = _run_awaiting_knowledge_base(gateway, store, client)

    gateway.on_knowledge_base_result(run_id, [], caller="oracle")

    assert store.history(run_id)[-1].text == "question"
    assert len(client.drain()) == 1


def test_callbacks_emit_spans():
    telemetry = RecordingTelemetryClient()
    gateway, store, _ = make_gateway(telemetry=telemetry)
    run_id = store.start_run("alice", "hello")

    gateway.on_completion(run_id, OracleResponse(content="hi"), caller="oracle")

    name, attrs = telemetry.spans[-1]
    assert name == "oracle.on_completion"
    assert attrs["run_id"] == run_id
    assert attrs["outcome"] == "reply"
    assert attrs["success"] is True
    assert "duration_ms" in attrs


def test_failed_callback_span_records_failure():
    telemetry = RecordingTelemetryClient()
    gateway, store, _ = make_gateway(telemetry=telemetry)
    run_id = store.start_run("alice", "hello")

    with pytest.raises(ProtocolStateError):
        gateway.on_tool_result(run_id, "x", caller="oracle")

    name, attrs = telemetry.spans[-1]
    assert name == "oracle.on_tool_result"
    assert attrs["success"] is False
    assert attrs["error_type"] == "ProtocolStateError"


class RefusingClient(QueueOracleClient):
    """Queue client whose transport refuses selected request kinds or runs."""

    def __init__(self, *, kinds=(), runs=()) -> None:
        super().__init__()
        self.kinds = set(kinds)
        self.runs = set(runs)

    def submit(self, request) -> None:
        if request.kind in self.kinds or request.run_id in self.runs:
            raise ConnectionError("transport down")
        super().submit(request)


def test_refused_tool_request_closes_the_turn():
    client = RefusingClient(kinds={RequestKind.TOOL})
    telemetry = RecordingTelemetryClient()
    gateway = OracleGateway(client, oracle_identity="oracle", telemetry=telemetry)
    store = ChatRunStore(gateway)
    gateway.attach(store)
    run_id = store.start_run("alice", "2+2?")

    gateway.on_completion(run_id, OracleResponse(function_name="calc", function_arguments="2+2"), caller="oracle")

    history = store.history(run_id)
    assert [m.role for m in history] == [Role.USER, Role.ASSISTANT]
    assert history[-1].text == DISPATCH_FAILURE_PREFIX + "transport down"
    assert store.state(run_id) is RunState.AWAITING_CALLER_INPUT
    assert gateway.outstanding(run_id) is None
    assert telemetry.spans[-1][1]["outcome"] == "dispatch_failed"

    store.submit_message(run_id, "alice", "try again")
    assert store.state(run_id) is RunState.AWAITING_COMPLETION


def test_refused_completion_after_tool_result_closes_the_turn():
    client = RefusingClient()
    gateway = OracleGateway(client, oracle_identity="oracle")
    store = ChatRunStore(gateway)
    gateway.attach(store)
    run_id = store.start_run("alice", "2+2?")
    gateway.on_completion(run_id, OracleResponse(function_name="calc", function_arguments="2+2"), caller="oracle")
    client.runs.add(run_id)

    gateway.on_tool_result(run_id, "4", caller="oracle")

    texts = [m.text for m in store.history(run_id)]
    assert texts == ["2+2?", "[tool call] calc(2+2)", "4", DISPATCH_FAILURE_PREFIX + "transport down"]
    assert store.state(run_id) is RunState.AWAITING_CALLER_INPUT


def test_failing_content_handler_still_appends_reply():
    telemetry = RecordingTelemetryClient()

    def on_content(run_id, text):
        raise RuntimeError("handler exploded")

    gateway, store, _ = make_gateway(on_content=on_content, telemetry=telemetry)
    run_id = store.start_run("alice", "hello")

    gateway.on_completion(run_id, OracleResponse(content="reply"), caller="oracle")

    assert store.history(run_id)[-1].text == "reply"
    assert store.state(run_id) is RunState.AWAITING_CALLER_INPUT
    attrs = telemetry.spans[-1][1]
    assert attrs["content_error"] == "RuntimeError"
    assert attrs["success"] is True
