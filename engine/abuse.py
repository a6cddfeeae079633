"""
engine/abuse.py: per-user abuse signals for non-premium users.

Two in-memory sliding windows per user (flood timestamps, recent texts),
both bounded and pruned lazily on every message, and dropped when the user's
session ends or they are banned. Cumulative counters
(bad words, links, reports, warnings) live on the user row in the store.
"""

import logging
from collections import deque
from dataclasses import dataclass
from typing import Deque, Dict, Optional

from .models import UserRef
from .ports import TextClassifier, UserStore

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class AbusePolicy:
    flood_limit: int = 20
    flood_window: float = 10.0
    repeat_limit: int = 15
    repeat_window: int = 20
    bad_word_limit: int = 50
    link_spam_limit: int = 20
    report_limit: int = 50
    warning_limit: int = 3


@dataclass(frozen=True)
class ViolationReport:
    flood: bool = False
    repeat: bool = False
    flood_count: int = 0
    repeat_count: int = 0
    bad_words: int = 0
    links: int = 0


class _Window:
    __slots__ = ("stamps", "texts")

    def __init__(self, policy: AbusePolicy):
        self.stamps: Deque[float] = deque(maxlen=policy.flood_limit)
        self.texts: Deque[str] = deque(maxlen=policy.repeat_window)


class AbuseTracker:
    def __init__(self, store: UserStore, content_filter: TextClassifier, policy: Optional[AbusePolicy] = None):
        self.store = store
        self.filter = content_filter
        self.policy = policy or AbusePolicy()
        self._windows: Dict[int, _Window] = {}

    def record_message(self, user_id: int, text: Optional[str], now: float) -> ViolationReport:
        w = self._windows.get(user_id)
        if w is None:
            w = self._windows[user_id] = _Window(self.policy)

        w.stamps.append(now)
        horizon = now - self.policy.flood_window
        while w.stamps and w.stamps[0] <= horizon:
            w.stamps.popleft()
        flood_count = len(w.stamps)

        repeat_count = 0
        if text:
            w.texts.append(text)
            repeat_count = w.texts.count(text)

        return ViolationReport(
            flood=flood_count >= self.policy.flood_limit,
            repeat=repeat_count >= self.policy.repeat_limit,
            flood_count=flood_count,
            repeat_count=repeat_count,
            bad_words=self.filter.classify(text).violation_count,
            links=self.filter.count_links(text),
        )

    async def record_report(self, reporter_id: int, reported_id: int, reason: str) -> Optional[int]:
        """Returns the unique-reporter total, or None when this reporter already reported."""
        total = await self.store.add_report(reporter_id, reported_id, reason)
        if total is None:
            log.debug("duplicate report %s -> %s ignored", reporter_id, reported_id)
        return total

    def should_auto_ban(self, user: UserRef, report: Optional[ViolationReport] = None, now: Optional[float] = None) -> Optional[str]:
        if now is not None and user.premium_active(now):
            return None
        p = self.policy
        if report is not None:
            if report.flood:
                return "flood"
            if report.repeat:
                return "repeat_spam"
        if user.bad_word_total >= p.bad_word_limit:
            return "bad_words"
        if user.link_spam_total >= p.link_spam_limit:
            return "link_spam"
        if user.report_total >= p.report_limit:
            return "reports"
        if user.warning_count >= p.warning_limit:
            return "warnings"
        return None

    def forget(self, user_id: int) -> None:
        self._windows.pop(user_id, None)

    def tracked_users(self) -> int:
        return len(self._windows)
