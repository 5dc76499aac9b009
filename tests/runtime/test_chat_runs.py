import pytest

from agentmesh.runtime.chat_runs import ChatRunStore, Role, RunState
from agentmesh.runtime.errors import AuthorizationError, ProtocolStateError, UnknownRunError
from agentmesh.runtime.gateway import CompletionRequest, KnowledgeBaseRequest, OracleGateway
from agentmesh.runtime.models import OracleResponse
from agentmesh.runtime.oracle import QueueOracleClient


def make_store(**kwargs):
    client = QueueOracleClient()
    gateway = OracleGateway(client)
    store = ChatRunStore(gateway, **kwargs)
    gateway.attach(store)
    return store, gateway, client


def reply(gateway, run_id, text="ok"):
    gateway.on_completion(run_id, OracleResponse(content=text), caller="oracle")


def test_start_run_records_user_message_and_requests_completion():
    store, _, client = make_store()

    run_id = store.start_run("alice", "hello")

    assert run_id == 0
    history = store.history(run_id)
    assert [m.role for m in history] == [Role.USER]
    assert history[0].text == "hello"
    assert store.state(run_id) is RunState.AWAITING_COMPLETION
    (request,) = client.drain()
    assert isinstance(request, CompletionRequest)
    assert request.run_id == run_id
    assert request.messages == ({"role": "user", "content": "hello"},)


def test_run_ids_are_sequential():
    store, _, _ = make_store()
    assert store.start_run("alice", "a") == 0
    assert store.start_run("bob", "b") == 1
    assert len(store) == 2


def test_submit_message_rejects_other_owner():
    store, gateway, _ = make_store()
    run_id = store.start_run("alice", "hello")
    reply(gateway, run_id)

    with pytest.raises(AuthorizationError):
        store.submit_message(run_id, "mallory", "hijack")
    assert len(store.history(run_id)) == 2


def test_submit_message_requires_assistant_turn():
    store, _, _ = make_store()
    run_id = store.start_run("alice", "hello")

    with pytest.raises(ProtocolStateError):
        store.submit_message(run_id, "alice", "too soon")


def test_conversation_alternates_roles():
    store, gateway, client = make_store()
    run_id = store.start_run("alice", "one")
    reply(gateway, run_id, "two")
    store.submit_message(run_id, "alice", "three")
    reply(gateway, run_id, "four")

    roles = [m.role for m in store.history(run_id)]
    assert roles == [Role.USER, Role.ASSISTANT, Role.USER, Role.ASSISTANT]
    assert store.state(run_id) is RunState.AWAITING_CALLER_INPUT
    assert len(client.drain()) == 2


def test_submit_message_queries_configured_knowledge_base():
    store, gateway, client = make_store(knowledge_base="kb-1", knowledge_base_top_k=4)
    run_id = store.start_run("alice", "hello")
    reply(gateway, run_id)
    client.drain()

    store.submit_message(run_id, "alice", "what is in the docs?")

    assert store.state(run_id) is RunState.AWAITING_KB_RESULT
    (request,) = client.drain()
    assert isinstance(request, KnowledgeBaseRequest)
    assert request.knowledge_base == "kb-1"
    assert request.query == "what is in the docs?"
    assert request.top_k == 4


def test_append_enforces_alternation():
    store, _, _ = make_store()
    run_id = store.start_run("alice", "hello")

    store.append_assistant(run_id, "hi")
    with pytest.raises(ProtocolStateError):
        store.append_assistant(run_id, "hi again")


def test_begin_request_allows_one_outstanding_request():
    store, gateway, _ = make_store()
    run_id = store.start_run("alice", "hello")

    with pytest.raises(ProtocolStateError):
        gateway.request_completion(run_id)


def test_unknown_run():
    store, _, _ = make_store()
    with pytest.raises(UnknownRunError):
        store.history(3)


def test_render_messages_uses_lowercase_roles():
    store, gateway, _ = make_store()
    run_id = store.start_run("alice", "hello")
    reply(gateway, run_id, "hey")

    assert store.render_messages(run_id) == [
        {"role": "user", "content": "hello"},
        {"role": "assistant", "content": "hey"},
    ]
