"""
Command Interpreter - Directives embedded in completion text

WHAT: Parses ``|COMMAND|<verb>|<args>|`` directives and applies them in order
WHERE: agentmesh/runtime/commands.py - between the gateway and the actor registry
WHO: Gateway hands every plain completion for a run to :meth:`CommandInterpreter.interpret`
TIME: O(n) in the number of ``|``-separated tokens

Grammar: the text is split on ``|``; a directive starts at a token whose
last line, stripped of whitespace, is ``COMMAND`` (so ``COMMAND `` and
``note\nCOMMAND`` both open one). The next token is the verb:

    introspect <context>                 replace the acting actor's context
    message    <actor id> <text>         start a run addressed to another actor
    create     <system prompt> <context> register a new actor

Directives are applied strictly in text order. ``create`` and ``message``
directives past the per-response caps are dropped silently. A malformed
directive (unknown verb, missing arguments, bad actor id, ``introspect``
from a run no actor owns) is reported and skipped on its own; directives
after it still apply.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Union

from .actors import ActorRegistry
from .errors import MalformedDirective, UnknownActorError

logger = logging.getLogger(__name__)

COMMAND_TOKEN = "COMMAND"
MAX_ACTOR_ID_DIGITS = 18

_ACTOR_ID = re.compile(r"[0-9]+")


@dataclass(slots=True, frozen=True)
class IntrospectDirective:
    context: str


@dataclass(slots=True, frozen=True)
class MessageDirective:
    target: int
    text: str


@dataclass(slots=True, frozen=True)
class CreateDirective:
    system_prompt: str
    context: str


Directive = Union[IntrospectDirective, MessageDirective, CreateDirective]

_ARITY = {"introspect": 1, "message": 2, "create": 2}


def _is_command(token: str) -> bool:
    return token.rsplit("\n", 1)[-1].strip() == COMMAND_TOKEN


def _parse_actor_id(raw: str, position: int) -> int:
    value = raw.strip()
    # ASCII digits only; bounded so int() never hits the str-conversion limit
    if not _ACTOR_ID.fullmatch(value) or len(value) > MAX_ACTOR_ID_DIGITS:
        raise MalformedDirective(f"message target {raw[:40]!r} is not a numeric actor id", position=position)
    return int(value)


def _parse_at(tokens: list[str], start: int) -> tuple[Directive, int]:
    """Parse the directive whose ``COMMAND`` token sits at ``start``."""

    if start + 1 >= len(tokens):
        raise MalformedDirective("directive has no verb", position=start)
    verb = tokens[start + 1].strip()
    arity = _ARITY.get(verb)
    if arity is None:
        raise MalformedDirective(f"unknown verb {verb[:40]!r}", position=start)
    args = tokens[start + 2 : start + 2 + arity]
    if len(args) < arity or any(_is_command(arg) for arg in args):
        raise MalformedDirective(f"{verb} expects {arity} argument(s)", position=start)

    if verb == "introspect":
        directive: Directive = IntrospectDirective(context=args[0])
    elif verb == "message":
        directive = MessageDirective(target=_parse_actor_id(args[0], start), text=args[1])
    else:
        directive = CreateDirective(system_prompt=args[0], context=args[1])
    return directive, start + 2 + arity


def parse_directives(text: str) -> list[Union[Directive, MalformedDirective]]:
    """Return directives in text order; malformed ones are returned as errors."""

    tokens = text.split("|")
    parsed: list[Union[Directive, MalformedDirective]] = []
    index = 0
    while index < len(tokens):
        if not _is_command(tokens[index]):
            index += 1
            continue
        try:
            directive, index = _parse_at(tokens, index)
        except MalformedDirective as exc:
            parsed.append(exc)
            index += 1
            continue
        parsed.append(directive)
    return parsed


@dataclass(slots=True)
class InterpretationResult:
    run_id: int
    acting_actor: int | None
    applied: list[Directive] = field(default_factory=list)
    skipped: list[Directive] = field(default_factory=list)
    malformed: list[MalformedDirective] = field(default_factory=list)
    created_actor_ids: list[int] = field(default_factory=list)
    spawned_run_ids: list[int] = field(default_factory=list)


class CommandInterpreter:
    """Applies parsed directives to the actor registry under per-response caps."""

    def __init__(self, registry: ActorRegistry) -> None:
        self._registry = registry

    def interpret(self, run_id: int, text: str) -> InterpretationResult:
        acting = self._registry.actor_for_run(run_id)
        spawn_cap, message_cap = self._registry.limits_for(acting)
        result = InterpretationResult(run_id=run_id, acting_actor=acting)

        for item in parse_directives(text):
            if isinstance(item, MalformedDirective):
                self._reject(result, item)
                continue
            if isinstance(item, CreateDirective) and len(result.created_actor_ids) >= spawn_cap:
                logger.warning(f"Run {run_id}: create cap {spawn_cap} reached, dropping directive")
                result.skipped.append(item)
                continue
            if isinstance(item, MessageDirective) and len(result.spawned_run_ids) >= message_cap:
                logger.warning(f"Run {run_id}: message cap {message_cap} reached, dropping directive")
                result.skipped.append(item)
                continue
            try:
                self._apply(result, item)
            except MalformedDirective as exc:
                self._reject(result, exc)
                continue
            result.applied.append(item)
        return result

    def _apply(self, result: InterpretationResult, directive: Directive) -> None:
        if isinstance(directive, IntrospectDirective):
            if result.acting_actor is None:
                raise MalformedDirective(f"run {result.run_id} has no acting actor to introspect")
            self._registry.introspect(result.acting_actor, directive.context)
        elif isinstance(directive, MessageDirective):
            try:
                spawned = self._registry.message_actor(
                    directive.target,
                    directive.text,
                    origin_run_id=result.run_id,
                )
            except UnknownActorError as exc:
                raise MalformedDirective(str(exc)) from exc
            result.spawned_run_ids.append(spawned)
        elif isinstance(directive, CreateDirective):
            actor_id = self._registry.create_actor(directive.system_prompt, directive.context)
            self._registry.link_run(actor_id, result.run_id)
            result.created_actor_ids.append(actor_id)
        else:
            raise TypeError(f"Unsupported directive {directive!r}")

    @staticmethod
    def _reject(result: InterpretationResult, error: MalformedDirective) -> None:
        logger.warning(f"Run {result.run_id}: skipping malformed directive: {error}")
        result.malformed.append(error)


__all__ = [
    "COMMAND_TOKEN",
    "IntrospectDirective",
    "MessageDirective",
    "CreateDirective",
    "Directive",
    "InterpretationResult",
    "CommandInterpreter",
    "parse_directives",
]
