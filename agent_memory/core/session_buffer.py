"""Bounded short-term message window with an overflow summary per session."""

import logging
import threading
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import List

from ..models import Message, SessionMemory
from ..utils import truncate_text

logger = logging.getLogger(__name__)


@dataclass
class _BufferState:
    short_term: List[Message] = field(default_factory=list)
    summary_lines: List[str] = field(default_factory=list)
    token_total: int = 0
    evictions: int = 0
    lock: threading.Lock = field(default_factory=threading.Lock)


class SessionBuffer:
    """
    Sliding window of recent messages for each session.

    The window is capped by message count and by cumulative token estimate.
    Overflow evicts from the oldest end until both caps hold, and each
    eviction event adds one synopsis line to the session's summary. The
    summary only grows; this class never truncates it.

    At most ``max_sessions`` windows are held; the least recently used one is
    dropped to make room. A dropped window is rebuilt by replaying the
    session's message log, which the engine does on its next access.
    """

    def __init__(
        self,
        max_messages: int = 20,
        max_tokens: int = 4000,
        synopsis_chars: int = 100,
        max_sessions: int = 1000,
    ):
        """
        Initialize the buffer.

        Args:
            max_messages: Maximum messages kept in the window
            max_tokens: Maximum cumulative token estimate of the window
            synopsis_chars: Characters kept per evicted message in the summary
            max_sessions: Windows held before the least recently used is dropped
        """
        if max_messages < 1:
            raise ValueError("max_messages must be at least 1")
        if max_sessions < 1:
            raise ValueError("max_sessions must be at least 1")
        self.max_messages = max_messages
        self.max_tokens = max_tokens
        self.synopsis_chars = synopsis_chars
        self.max_sessions = max_sessions
        self._sessions: "OrderedDict[str, _BufferState]" = OrderedDict()
        self._registry_lock = threading.Lock()

    def _state(self, session_id: str) -> _BufferState:
        with self._registry_lock:
            state = self._sessions.get(session_id)
            if state is not None:
                self._sessions.move_to_end(session_id)
                return state
            state = self._sessions[session_id] = _BufferState()
            while len(self._sessions) > self.max_sessions:
                dropped, _ = self._sessions.popitem(last=False)
                logger.debug("Dropped idle session buffer %s", dropped)
            return state

    def _over_budget(self, state: _BufferState) -> bool:
        if len(state.short_term) > self.max_messages:
            return True
        # A single message larger than the whole budget is kept on its own.
        return state.token_total > self.max_tokens and len(state.short_term) > 1

    def _synopsis(self, evicted: List[Message]) -> str:
        return " | ".join(
            f"{m.role}: {truncate_text(m.content, self.synopsis_chars)}" for m in evicted
        )

    def append(self, session_id: str, message: Message) -> int:
        """
        Add a message to a session's window.

        Returns:
            Number of messages evicted by this append
        """
        state = self._state(session_id)
        with state.lock:
            state.short_term.append(message)
            state.token_total += message.token_count or 0

            evicted: List[Message] = []
            while self._over_budget(state):
                oldest = state.short_term.pop(0)
                state.token_total -= oldest.token_count or 0
                evicted.append(oldest)

            if evicted:
                state.summary_lines.append(self._synopsis(evicted))
                state.evictions += 1
                logger.debug(
                    "Session %s evicted %d message(s) into summary", session_id, len(evicted)
                )
            return len(evicted)

    def load(self, session_id: str, messages: List[Message]) -> None:
        """Rebuild a session's window by replaying its message log."""
        self.drop(session_id)
        for message in messages:
            self.append(session_id, message)

    def snapshot(self, session_id: str) -> SessionMemory:
        """Copy of the window and summary; facts and preferences are left empty."""
        with self._registry_lock:
            state = self._sessions.get(session_id)
        if state is None:
            return SessionMemory()
        with state.lock:
            return SessionMemory(
                short_term=list(state.short_term),
                summary="\n".join(state.summary_lines),
            )

    def has(self, session_id: str) -> bool:
        with self._registry_lock:
            return session_id in self._sessions

    def drop(self, session_id: str) -> bool:
        """Forget a session's window; True when one was held."""
        with self._registry_lock:
            return self._sessions.pop(session_id, None) is not None

    def __len__(self) -> int:
        return len(self._sessions)
