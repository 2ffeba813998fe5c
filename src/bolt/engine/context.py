"""
Bolt Play Context

Runtime state owned by a single play. Created when the play starts and
dropped when it ends.
"""

import os
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, Optional, Set

from bolt.engine.playbook import DEFAULT_BECOME_USER, Play


@dataclass
class RegisteredResult:
    """What ``register`` stores for a task."""

    changed: bool = False
    message: str = ""
    data: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'changed': self.changed,
            'message': self.message,
            'data': self.data,
        }


@dataclass
class PlayContext:
    """Runtime context for one play."""

    play: Play
    vars: Dict[str, Any] = field(default_factory=dict)
    facts: Dict[str, Any] = field(default_factory=dict)
    registered: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    notified_handlers: Set[str] = field(default_factory=set)
    connection: Any = None  # Connection object (set during execution)
    # Privilege escalation for the task currently running
    become: bool = False
    become_user: str = DEFAULT_BECOME_USER

    @classmethod
    def for_play(cls, play: Play, extra_vars: Optional[Dict[str, Any]] = None) -> "PlayContext":
        """Build a fresh context: play vars, then ``env``, then extra vars on top."""
        ctx = cls(play=play, become=play.become, become_user=play.become_user)
        ctx.vars.update(play.vars)
        ctx.vars['env'] = dict(os.environ)
        if extra_vars:
            ctx.vars.update(extra_vars)
        return ctx

    def set_facts(self, facts: Dict[str, Any]) -> None:
        self.facts = facts
        self.vars['facts'] = facts

    def register(self, name: str, result: RegisteredResult) -> None:
        """Store a task result under ``name`` in both registered and vars."""
        value = result.to_dict()
        self.registered[name] = value
        self.vars[name] = value

    def notify(self, handler_names) -> None:
        self.notified_handlers.update(handler_names)

    @contextmanager
    def loop_vars(self, loop_var: str) -> Iterator[Any]:
        """
        Scope loop variables to a block.

        Yields a setter ``(item, index)``; both keys are removed on exit,
        whether or not the block raised.
        """
        def set_item(item: Any, index: int) -> None:
            self.vars[loop_var] = item
            self.vars['loop_index'] = index

        try:
            yield set_item
        finally:
            self.vars.pop(loop_var, None)
            self.vars.pop('loop_index', None)

    @contextmanager
    def escalation(self, become: bool, become_user: str) -> Iterator[None]:
        """Apply a task's become settings for the duration of the block."""
        saved = (self.become, self.become_user)
        self.become, self.become_user = become, become_user
        try:
            yield
        finally:
            self.become, self.become_user = saved
