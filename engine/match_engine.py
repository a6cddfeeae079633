"""
engine/match_engine.py: Framework-agnostic matching engine.
Operations expected by handlers/UI-layer:
  - request_match(user_id, preferred_gender) -> MatchResult
  - cancel_search(user_id) -> bool
  - end_session(user_id) -> partner_id | None
  - force_terminate(user_id, reason) -> partner_id | None
Notes:
  * WaitingPool and SessionTable are only touched under self.lock, so
    "find candidate, dequeue both, start session" is one critical section.
  * User rows are re-read from the store on every call; nothing is cached.
"""

import asyncio
import logging
import time
from typing import Callable, Optional, Union

from .models import MatchResult, MatchStatus, Preference, UserRef, UserState
from .ports import UserStore
from .sessions import SessionTable
from .waiting_pool import WaitingPool

log = logging.getLogger(__name__)


def _clear_premium(u: UserRef) -> None:
    u.is_premium = False
    u.premium_expires_at = None


class MatchEngine:
    def __init__(self, store: UserStore, pool: Optional[WaitingPool] = None,
                 sessions: Optional[SessionTable] = None, clock: Callable[[], float] = time.time,
                 on_session_end: Optional[Callable[[int], None]] = None):
        self.store = store
        self.pool = pool if pool is not None else WaitingPool()
        self.sessions = sessions if sessions is not None else SessionTable()
        self.clock = clock
        self.lock = asyncio.Lock()
        # called once per participant after a session is torn down
        self.on_session_end = on_session_end

    async def request_match(self, user_id: int, preferred_gender: Union[Preference, str, None] = Preference.ANY,
                            now: Optional[float] = None) -> MatchResult:
        """Pair the user with the first eligible waiting user, or put them in the pool."""
        now = self.clock() if now is None else now
        preferred = preferred_gender if isinstance(preferred_gender, Preference) else Preference.parse(preferred_gender)
        async with self.lock:
            if self.sessions.partner_of(user_id) is not None:
                return MatchResult(MatchStatus.ALREADY_IN_SESSION, self.sessions.partner_of(user_id))

            user = await self.store.get(user_id)
            if user is None:
                return MatchResult(MatchStatus.NOT_REGISTERED)
            if not user.is_active:
                if not user.ban_expired(now):
                    self.pool.dequeue_if_present(user_id)
                    return MatchResult(MatchStatus.BANNED)
                await self.store.resolve_reports(user_id)
                user = await self.store.update(user_id, UserRef.lift_ban) or user
                log.info("[match] temporary ban of %s expired, lifted", user_id)

            self.pool.dequeue_if_present(user_id)

            premium = user.premium_active(now)
            if user.premium_expired(now):
                await self.store.update(user_id, _clear_premium)
                log.info("[match] premium of %s expired", user_id)

            partner_id = await self._pick_partner(user_id, premium, preferred)
            if partner_id is None:
                self.pool.enqueue(user_id, user.gender, preferred, premium, now)
                log.debug("[match] %s waiting (pref=%s premium=%s, pool=%d)", user_id, preferred.value, premium, self.pool.size())
                return MatchResult(MatchStatus.WAITING)

            self.pool.dequeue_if_present(partner_id)
            self.sessions.start(user_id, partner_id, now)
            await self.store.record_pair_start(user_id, partner_id)
            log.info("[match] %s <-> %s", user_id, partner_id)
            return MatchResult(MatchStatus.MATCHED, partner_id)

    async def _pick_partner(self, user_id: int, premium: bool, preferred: Preference) -> Optional[int]:
        # a waiting user may have been banned or deleted since enqueue; drop and rescan
        while True:
            candidate_id = self.pool.find_match(user_id, premium, preferred)
            if candidate_id is None:
                return None
            candidate = await self.store.get(candidate_id)
            if candidate is not None and candidate.is_active and candidate_id not in self.sessions:
                return candidate_id
            self.pool.dequeue_if_present(candidate_id)
            log.info("[match] dropped stale waiting entry %s", candidate_id)

    async def cancel_search(self, user_id: int) -> bool:
        async with self.lock:
            return self.pool.dequeue_if_present(user_id) is not None

    async def end_session(self, user_id: int) -> Optional[int]:
        async with self.lock:
            return await self._end(user_id)

    async def force_terminate(self, user_id: int, reason: str) -> Optional[int]:
        async with self.lock:
            partner_id = await self._end(user_id)
        log.info("[match] force-terminated %s (%s), partner=%s", user_id, reason, partner_id)
        return partner_id

    async def _end(self, user_id: int) -> Optional[int]:
        partner_id = self.sessions.end(user_id)
        self.pool.dequeue_if_present(user_id)
        if partner_id is not None:
            await self.store.record_pair_end(user_id, partner_id)
            log.info("[match] session ended %s -/- %s", user_id, partner_id)
            if self.on_session_end is not None:
                self.on_session_end(user_id)
                self.on_session_end(partner_id)
        return partner_id

    def partner_of(self, user_id: int) -> Optional[int]:
        return self.sessions.partner_of(user_id)

    def state_of(self, user_id: int) -> UserState:
        if user_id in self.sessions:
            return UserState.PAIRED
        if user_id in self.pool:
            return UserState.WAITING
        return UserState.IDLE
