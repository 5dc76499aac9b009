"""
Actor Registry - Agent identities and the runs they spawn

WHAT: Actor records (system prompt, mutable context, spawned runs) and spawning
WHERE: agentmesh/runtime/actors.py - above the chat run store
WHO: Orchestrator callers and the command interpreter
TIME: Create/introspect O(1); messaging cost dominated by prompt assembly

Actor ids are dense indices into the actor table and are never reused. Each
actor-initiated run is correlated back to its actor (and, for directive
spawns, to the run whose completion triggered it); correlations are recorded
before the run's first request leaves the process and never change.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Optional

from .chat_runs import ChatRunStore
from .config import ACTOR_LIMIT, MESSAGE_LIMIT
from .errors import UnknownActorError
from .prompting import compose_actor_prompt, render_protocol_header

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class Actor:
    actor_id: int
    system_prompt: str
    context: str
    spawn_limit: int
    message_limit: int
    spawned_run_ids: list[int] = field(default_factory=list)


@dataclass(slots=True, frozen=True)
class ActorInfo:
    """Read-only snapshot of an actor."""

    actor_id: int
    system_prompt: str
    context: str
    spawned_run_ids: tuple[int, ...]
    spawn_limit: int
    message_limit: int


class ActorRegistry:
    def __init__(
        self,
        store: ChatRunStore,
        *,
        owner: str = "orchestrator",
        spawn_limit: int = ACTOR_LIMIT,
        message_limit: int = MESSAGE_LIMIT,
    ) -> None:
        self._store = store
        self._owner = owner
        self._spawn_limit = spawn_limit
        self._message_limit = message_limit
        self._actors: list[Actor] = []
        self._run_actor: dict[int, int] = {}
        self._run_origin: dict[int, int] = {}
        self._lock = threading.RLock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._actors)

    @property
    def owner(self) -> str:
        return self._owner

    def create_actor(self, system_prompt: str, initial_context: str) -> int:
        with self._lock:
            actor = Actor(
                actor_id=len(self._actors),
                system_prompt=system_prompt,
                context=initial_context,
                spawn_limit=self._spawn_limit,
                message_limit=self._message_limit,
            )
            self._actors.append(actor)
        logger.info(f"Created actor {actor.actor_id}")
        return actor.actor_id

    def message_actor(self, actor_id: int, text: str, *, origin_run_id: int | None = None) -> int:
        """Start a run addressed to ``actor_id`` and correlate it back."""

        with self._lock:
            actor = self._get(actor_id)
            header = render_protocol_header(
                spawn_limit=actor.spawn_limit,
                message_limit=actor.message_limit,
            )
            prompt = compose_actor_prompt(
                header=header,
                system_prompt=actor.system_prompt,
                context=actor.context,
                text=text,
                actor_count=len(self._actors),
            )

        def _correlate(run_id: int) -> None:
            with self._lock:
                self._run_actor[run_id] = actor_id
                if origin_run_id is not None:
                    self._run_origin[run_id] = origin_run_id
                actor.spawned_run_ids.append(run_id)

        run_id = self._store.start_run(self._owner, prompt, on_created=_correlate)
        logger.info(f"Actor {actor_id} received run {run_id} (origin run {origin_run_id})")
        return run_id

    def introspect(self, actor_id: int, new_context: str) -> None:
        with self._lock:
            self._get(actor_id).context = new_context
        logger.info(f"Actor {actor_id} replaced its context ({len(new_context)} chars)")

    def link_run(self, actor_id: int, run_id: int) -> None:
        """Record ``run_id`` in an actor's spawned-run list."""

        with self._lock:
            self._get(actor_id).spawned_run_ids.append(run_id)

    def actor_for_run(self, run_id: int) -> Optional[int]:
        with self._lock:
            return self._run_actor.get(run_id)

    def origin_of(self, run_id: int) -> Optional[int]:
        with self._lock:
            return self._run_origin.get(run_id)

    def limits_for(self, actor_id: int | None) -> tuple[int, int]:
        """Per-response (spawn, message) caps for runs of ``actor_id``."""

        if actor_id is None:
            return self._spawn_limit, self._message_limit
        with self._lock:
            actor = self._get(actor_id)
            return actor.spawn_limit, actor.message_limit

    def info(self, actor_id: int) -> ActorInfo:
        with self._lock:
            return self._snapshot(self._get(actor_id))

    def all_info(self) -> list[ActorInfo]:
        with self._lock:
            return [self._snapshot(actor) for actor in self._actors]

    def _get(self, actor_id: int) -> Actor:
        if not 0 <= actor_id < len(self._actors):
            raise UnknownActorError(f"Unknown actor {actor_id}")
        return self._actors[actor_id]

    @staticmethod
    def _snapshot(actor: Actor) -> ActorInfo:
        return ActorInfo(
            actor_id=actor.actor_id,
            system_prompt=actor.system_prompt,
            context=actor.context,
            spawned_run_ids=tuple(actor.spawned_run_ids),
            spawn_limit=actor.spawn_limit,
            message_limit=actor.message_limit,
        )


__all__ = ["Actor", "ActorInfo", "ActorRegistry"]
