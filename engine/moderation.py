"""
engine/moderation.py: reports, warnings and admin overrides.
Every ban goes through ban_user(): mark inactive first, then end the session,
so a banned user is never observed in a session.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from .abuse import AbuseTracker
from .match_engine import MatchEngine
from .models import AdminResult, AdminStatus, ReportResult, ReportStatus, UserRef
from .payments import DAY, extend_premium

log = logging.getLogger(__name__)


async def ban_user(engine: MatchEngine, tracker: AbuseTracker, user_id: int, reason: str,
                   until: Optional[float] = None) -> Optional[int]:
    def _mark(u: UserRef) -> None:
        u.is_active = False
        u.ban_reason = reason
        u.ban_expires_at = until

    await engine.store.update(user_id, _mark)
    tracker.forget(user_id)
    partner_id = await engine.force_terminate(user_id, reason)
    log.warning("[ban] %s banned: %s%s", user_id, reason, f" until {until}" if until else "")
    return partner_id


class Moderator:
    def __init__(self, engine: MatchEngine, tracker: AbuseTracker):
        self.engine = engine
        self.store = engine.store
        self.tracker = tracker

    async def record_report(self, reporter_id: int, reported_id: int, reason: str,
                            now: Optional[float] = None) -> ReportResult:
        now = self.engine.clock() if now is None else now
        if reporter_id == reported_id:
            return ReportResult(ReportStatus.SELF_REPORT)
        target = await self.store.get(reported_id)
        if target is None:
            return ReportResult(ReportStatus.UNKNOWN_USER)
        if target.premium_active(now):
            return ReportResult(ReportStatus.PREMIUM_IMMUNE)

        total = await self.tracker.record_report(reporter_id, reported_id, reason)
        if total is None:
            return ReportResult(ReportStatus.ALREADY_REPORTED, target.report_total)
        log.info("[report] %s reported %s (%s), unique reporters=%d", reporter_id, reported_id, reason, total)

        target = await self.store.get(reported_id) or target
        ban_reason = self.tracker.should_auto_ban(target, None, now)
        if ban_reason and target.is_active:
            partner_id = await ban_user(self.engine, self.tracker, reported_id, ban_reason)
            return ReportResult(ReportStatus.AUTO_BANNED, total, partner_id)
        return ReportResult(ReportStatus.RECORDED, total)

    async def warn(self, user_id: int, reason: str = "", now: Optional[float] = None) -> Tuple[AdminResult, Optional[str]]:
        """Adds a warning; returns the result and the ban reason if the warning limit was reached."""
        now = self.engine.clock() if now is None else now

        def _inc(u: UserRef) -> None:
            u.warning_count += 1

        user = await self.store.update(user_id, _inc)
        if user is None:
            return AdminResult(AdminStatus.NOT_FOUND), None
        log.info("[warn] %s warned (%s), total=%d", user_id, reason or "-", user.warning_count)
        ban_reason = self.tracker.should_auto_ban(user, None, now)
        if ban_reason and user.is_active:
            partner_id = await ban_user(self.engine, self.tracker, user_id, ban_reason)
            return AdminResult(AdminStatus.DONE, partner_id, user), ban_reason
        return AdminResult(AdminStatus.DONE, None, user), None

    async def admin_force_end(self, user_id: int) -> AdminResult:
        partner_id = await self.engine.force_terminate(user_id, "admin")
        return AdminResult(AdminStatus.DONE if partner_id is not None else AdminStatus.NO_CHANGE, partner_id)

    async def admin_ban(self, user_id: int, reason: str = "Banned by admin", days: Optional[int] = None,
                        now: Optional[float] = None) -> AdminResult:
        now = self.engine.clock() if now is None else now
        user = await self.store.get(user_id)
        if user is None:
            return AdminResult(AdminStatus.NOT_FOUND)
        if not user.is_active:
            return AdminResult(AdminStatus.NO_CHANGE, user=user)
        until = now + days * DAY if days else None
        partner_id = await ban_user(self.engine, self.tracker, user_id, reason, until)
        return AdminResult(AdminStatus.DONE, partner_id, user)

    async def admin_unban(self, user_id: int) -> AdminResult:
        user = await self.store.get(user_id)
        if user is None:
            return AdminResult(AdminStatus.NOT_FOUND)
        if user.is_active:
            return AdminResult(AdminStatus.NO_CHANGE, user=user)

        await self.store.resolve_reports(user_id)
        user = await self.store.update(user_id, UserRef.lift_ban)
        log.info("[ban] %s unbanned", user_id)
        return AdminResult(AdminStatus.DONE, user=user)

    async def grant_premium(self, user_id: int, days: int, now: Optional[float] = None) -> AdminResult:
        now = self.engine.clock() if now is None else now
        user = await self.store.update(user_id, extend_premium(days, now))
        if user is None:
            return AdminResult(AdminStatus.NOT_FOUND)
        await self.store.record_purchase(user_id, "premium", 0, days, "ADMIN_GRANT", user.premium_expires_at)
        log.info("[admin] granted %d premium days to %s", days, user_id)
        return AdminResult(AdminStatus.DONE, user=user)

    async def resolve_report(self, report_id: int) -> AdminResult:
        """Closes one open report; the target's unique-reporter count is recomputed."""
        target_id = await self.store.resolve_report(report_id)
        if target_id is None:
            return AdminResult(AdminStatus.NOT_FOUND)
        log.info("[report] #%s resolved (target %s)", report_id, target_id)
        return AdminResult(AdminStatus.DONE, user=await self.store.get(target_id))

    async def recent_reports(self, limit: int = 10) -> List[Dict[str, Any]]:
        return await self.store.list_reports(limit)
