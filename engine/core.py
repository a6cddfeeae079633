"""
engine/core.py: wires the chat core together around one store.
The bot, the stats API and the tests all go through ChatCore.
"""

import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Optional

from .abuse import AbusePolicy, AbuseTracker
from .content_filter import ContentFilter
from .match_engine import MatchEngine
from .moderation import Moderator
from .payments import PaymentEvents
from .ports import UserStore
from .relay import MessageRelay


@dataclass
class ChatCore:
    store: UserStore
    filter: ContentFilter
    tracker: AbuseTracker
    engine: MatchEngine
    relay: MessageRelay
    moderator: Moderator
    payments: PaymentEvents

    async def snapshot(self, now: Optional[float] = None) -> Dict[str, Any]:
        """Live counters plus persisted totals, for /stats and the admin command."""
        now = self.engine.clock() if now is None else now
        data = dict(await self.store.stats(now))
        data.update({
            "waiting": self.engine.pool.size(),
            "waiting_by_tier": self.engine.pool.counts(),
            "active_chats": self.engine.sessions.count(),
            "tracked_senders": self.tracker.tracked_users(),
        })
        return data


def build_core(store: UserStore, policy: Optional[AbusePolicy] = None,
               words: Optional[Iterable[str]] = None, clock: Callable[[], float] = time.time) -> ChatCore:
    content_filter = ContentFilter(words)
    tracker = AbuseTracker(store, content_filter, policy)
    engine = MatchEngine(store, clock=clock, on_session_end=tracker.forget)
    return ChatCore(
        store=store,
        filter=content_filter,
        tracker=tracker,
        engine=engine,
        relay=MessageRelay(engine, tracker, content_filter),
        moderator=Moderator(engine, tracker),
        payments=PaymentEvents(engine),
    )
