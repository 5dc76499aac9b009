"""
Prompt Composition - Actor prompts and the command protocol header

WHAT: Fixed preamble teaching the directive grammar, plus actor prompt assembly
WHERE: agentmesh/runtime/prompting.py - prompt generation layer
WHO: Actor registry building the opening message of every actor-initiated run
TIME: Prompt assembly <1ms

Every actor-authored prompt is the protocol header followed by the actor's
system prompt, its current context, the incoming message and the size of the
actor network. The header is the only place the completion provider learns
the ``|COMMAND|<verb>|<arg>...|`` grammar, so it must stay in sync with
``commands.py``.
"""

from __future__ import annotations

PROTOCOL_HEADER = (
    "You are one agent in a network of cooperating agents. You can act on the "
    "network by writing commands anywhere in your reply, in exactly this form:\n"
    "|COMMAND|introspect|<new context>| replaces your own context notes.\n"
    "|COMMAND|message|<agent id>|<message>| starts a conversation with another agent.\n"
    "|COMMAND|create|<system prompt>|<initial context>| adds a new agent to the network.\n"
    "Agent ids are numbers. Never use the | character inside an argument. "
    "Each reply may create at most {spawn_limit} agents and send at most "
    "{message_limit} messages; further commands are ignored.\n"
)


def render_protocol_header(*, spawn_limit: int, message_limit: int) -> str:
    return PROTOCOL_HEADER.format(spawn_limit=spawn_limit, message_limit=message_limit)


def compose_actor_prompt(
    *,
    header: str,
    system_prompt: str,
    context: str,
    text: str,
    actor_count: int,
) -> str:
    return (
        f"{header}\n"
        f"<system>\n{system_prompt}\n</system>\n"
        f"<context>\n{context}\n</context>\n"
        f"<message>\n{text}\n</message>\n"
        f"There are currently {actor_count} agents in the network.\n"
    )


__all__ = [
    "PROTOCOL_HEADER",
    "render_protocol_header",
    "compose_actor_prompt",
]
