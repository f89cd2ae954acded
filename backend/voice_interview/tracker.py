"""
Session identity and cumulative token accounting.

The local running total in SessionContext is authoritative; the remote store is
updated best-effort and may lag, or never see a local-only session at all.
"""

from __future__ import annotations

import logging
import random
import string
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol

LOG = logging.getLogger("interview.tracker")

LOCAL_SESSION_PREFIX = "local_"


class SessionStore(Protocol):
    async def create_session(self, user_id: str, user_email: Optional[str], interview_type: str) -> str: ...

    async def update_session_tokens(self, session_id: str, token_count: int) -> None: ...

    async def complete_session(self, session_id: str) -> None: ...

    async def get_session(self, session_id: str) -> Optional[Dict[str, Any]]: ...

    async def list_sessions(self, user_id: str) -> List[Dict[str, Any]]: ...


@dataclass
class User:
    id: str
    email: Optional[str] = None


@dataclass
class SessionContext:
    session_id: Optional[str] = None
    interview_type: Optional[str] = None
    total_tokens: int = 0
    completed: bool = False

    @property
    def is_local(self) -> bool:
        return bool(self.session_id) and self.session_id.startswith(LOCAL_SESSION_PREFIX)


def make_local_session_id() -> str:
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=9))
    return f"{LOCAL_SESSION_PREFIX}{int(time.time() * 1000)}_{suffix}"


class UsageTracker:
    def __init__(self, store: SessionStore) -> None:
        self.store = store

    async def ensure_session(self, ctx: SessionContext, user: User, interview_type: str) -> str:
        if ctx.session_id:
            return ctx.session_id
        try:
            ctx.session_id = await self.store.create_session(user.id, user.email, interview_type)
            LOG.info("Created session %s for %s (%s)", ctx.session_id, user.id, interview_type)
        except Exception as exc:
            ctx.session_id = make_local_session_id()
            LOG.warning("Session creation failed, continuing with local session %s: %s", ctx.session_id, exc)
        ctx.interview_type = interview_type
        ctx.completed = False
        return ctx.session_id

    async def add_tokens(self, ctx: SessionContext, count: int) -> int:
        """Add to the local total first, then best-effort to the store; returns the local total."""
        if count <= 0:
            return ctx.total_tokens
        ctx.total_tokens += count
        if not ctx.session_id or ctx.is_local:
            return ctx.total_tokens
        try:
            await self.store.update_session_tokens(ctx.session_id, count)
        except Exception as exc:
            LOG.warning("Token update failed for session %s (+%s): %s", ctx.session_id, count, exc)
        return ctx.total_tokens

    async def complete_session(self, ctx: SessionContext) -> None:
        if not ctx.session_id or ctx.completed:
            return
        ctx.completed = True
        if ctx.is_local:
            return
        try:
            await self.store.complete_session(ctx.session_id)
            LOG.info("Completed session %s (%s tokens)", ctx.session_id, ctx.total_tokens)
        except Exception as exc:
            LOG.warning("Completing session %s failed: %s", ctx.session_id, exc)

    def reset_session(self, ctx: SessionContext) -> None:
        ctx.session_id = None
        ctx.interview_type = None
        ctx.total_tokens = 0
        ctx.completed = False
