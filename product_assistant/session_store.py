from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Union

from .catalog.models import Product
from .models import SessionSummary, StoredMessage

FLOW_IDLE = "IDLE"
FLOW_AWAITING_PROBLEM_DETAIL = "AWAITING_PROBLEM_DETAIL"


@dataclass
class ConversationContext:
    """Per-session focus, flow state, and ordered turn history."""
    session_id: str
    last_product: Optional[Product] = None
    last_products: List[Product] = field(default_factory=list)
    conversation_history: List[StoredMessage] = field(default_factory=list)
    flow_state: str = FLOW_IDLE
    product_model_number: Optional[str] = None
    selected_problem: Optional[str] = None
    updated_at: float = field(default_factory=time.time)


class SessionStore:
    """In-memory conversation contexts keyed by session id."""

    def __init__(self, max_sessions: Optional[int] = None) -> None:
        """Purpose: Initialize the in-memory session map.
        Inputs/Outputs: Input is an optional max_sessions cap (0/None disables eviction).
        Side Effects / State: Creates empty caches.
        Dependencies: ConversationContext, SessionSummary, StoredMessage.
        Failure Modes: None.
        If Removed: Follow-up questions lose their product focus and history.
        Testing Notes: Set a low max_sessions and verify least-recent sessions are pruned.
        """
        # Keep configuration and start with no sessions.
        self._max_sessions = max_sessions
        self._contexts: Dict[str, ConversationContext] = {}
        self._summaries: Dict[str, SessionSummary] = {}

    def get(self, session_id: str) -> ConversationContext:
        """Purpose: Return the context for a session, creating it on first use.
        Inputs/Outputs: Input is session_id; output is the live ConversationContext.
        Side Effects / State: Creates the context and summary when missing.
        Dependencies: Uses _prune_sessions.
        Failure Modes: None.
        If Removed: Every message would start a fresh conversation.
        Testing Notes: Two calls with the same id return the same object.
        """
        # Create-on-miss so callers never handle an absent session.
        context = self._contexts.get(session_id)
        if context is None:
            context = ConversationContext(session_id=session_id)
            self._contexts[session_id] = context
            self._summaries[session_id] = SessionSummary(
                session_id=session_id,
                title="New Chat",
                updated_at=context.updated_at,
            )
            self._prune_sessions(keep=session_id)
        return context

    def append(self, session_id: str, role: str, content: str) -> StoredMessage:
        """Append one turn to a session's history and refresh its summary."""
        context = self.get(session_id)
        timestamp = time.time()
        message = StoredMessage(role=role, content=content, timestamp=timestamp)
        context.conversation_history.append(message)
        context.updated_at = timestamp

        summary = self._summaries[session_id]
        if summary.title == "New Chat" and role == "user" and content.strip():
            summary.title = content.strip().splitlines()[0][:48]
        summary.updated_at = timestamp
        return message

    def set_focus(self, session_id: str, focus: Union[Product, Sequence[Product], None]) -> None:
        """Purpose: Record which product(s) the conversation is currently about.
        Inputs/Outputs: Inputs are session_id and a Product, a list of products, or None.
        Side Effects / State: Overwrites last_product / last_products.
        Dependencies: ConversationContext fields.
        Failure Modes: None; an empty list clears the multi-product focus only.
        If Removed: Pronoun follow-ups ("how do I order this?") cannot be resolved.
        Testing Notes: A single product sets last_product; a list sets last_products.
        """
        # Single product vs list decides which focus slot is updated.
        context = self.get(session_id)
        if focus is None:
            context.last_product = None
            context.last_products = []
        elif isinstance(focus, Product):
            context.last_product = focus
        else:
            products = list(focus)
            if len(products) == 1:
                context.last_product = products[0]
            else:
                context.last_products = products
        context.updated_at = time.time()

    def get_messages(self, session_id: str) -> List[StoredMessage]:
        context = self._contexts.get(session_id)
        return list(context.conversation_history) if context else []

    def recent_history(self, session_id: str, window: int) -> List[Dict[str, str]]:
        """Last `window` turns as role/content dicts for the oracle."""
        messages = self.get_messages(session_id)
        if window <= 0:
            return []
        return [{"role": message.role, "content": message.content} for message in messages[-window:]]

    def list_sessions(self) -> List[SessionSummary]:
        return sorted(self._summaries.values(), key=lambda s: s.updated_at, reverse=True)

    def _prune_sessions(self, keep: Optional[str] = None) -> bool:
        """Purpose: Enforce max_sessions by dropping least-recently-updated sessions.
        Inputs/Outputs: Optional session id that must survive; returns True if any removed.
        Side Effects / State: Mutates _contexts/_summaries caches.
        Dependencies: Uses _max_sessions and updated_at ordering.
        Failure Modes: None; no-op when max_sessions is unset or not exceeded.
        If Removed: Session memory grows without bound.
        Testing Notes: Set max_sessions=2, create three sessions, and check the oldest is gone.
        """
        # Remove least-recent sessions when above the configured cap.
        if not self._max_sessions or self._max_sessions <= 0:
            return False
        if len(self._contexts) <= self._max_sessions:
            return False

        ordered = sorted(
            self._contexts.values(),
            key=lambda c: (c.session_id == keep, c.updated_at),
            reverse=True,
        )
        keep_ids = {context.session_id for context in ordered[: self._max_sessions]}
        removed = [session_id for session_id in list(self._contexts) if session_id not in keep_ids]
        for session_id in removed:
            self._contexts.pop(session_id, None)
            self._summaries.pop(session_id, None)
        return bool(removed)
