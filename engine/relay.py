"""
engine/relay.py: decides what happens to a message sent inside a session.
Returns a RelayOutcome; delivery is the caller's job (see messenger.py).
The partner is read outside the engine lock, so it is re-checked after every
store await before a message is routed.
"""

import logging
from dataclasses import replace
from typing import Optional

from .abuse import AbuseTracker, ViolationReport
from .match_engine import MatchEngine
from .models import InboundMessage, RelayOutcome, RelayStatus, UserRef
from .moderation import ban_user
from .ports import TextClassifier

log = logging.getLogger(__name__)


class MessageRelay:
    def __init__(self, engine: MatchEngine, tracker: AbuseTracker, content_filter: TextClassifier):
        self.engine = engine
        self.store = engine.store
        self.tracker = tracker
        self.filter = content_filter

    async def relay(self, sender_id: int, message: InboundMessage, now: Optional[float] = None) -> RelayOutcome:
        now = self.engine.clock() if now is None else now
        partner_id = self.engine.partner_of(sender_id)
        if partner_id is None:
            return RelayOutcome(RelayStatus.NO_SESSION)

        sender = await self.store.get(sender_id)
        partner = await self.store.get(partner_id)
        if not self._still_paired(sender_id, partner_id):
            return RelayOutcome(RelayStatus.NO_SESSION)
        if not (sender and partner and sender.is_active and partner.is_active):
            ended_with = await self.engine.end_session(sender_id)
            log.info("[relay] session %s/%s ended: restriction", sender_id, ended_with)
            return RelayOutcome(RelayStatus.SESSION_ENDED_RESTRICTION, ended_with)

        body = message.text if message.is_text else message.caption
        if not sender.premium_active(now):
            report = self.tracker.record_message(sender_id, body, now)
            sender = await self._persist_counters(sender, report)
            reason = self.tracker.should_auto_ban(sender, report, now)
            if reason:
                ended_with = await ban_user(self.engine, self.tracker, sender_id, reason)
                return RelayOutcome(RelayStatus.AUTO_BANNED, ended_with, reason=reason)
            # the store write above may have let the partner leave and re-pair
            if not self._still_paired(sender_id, partner_id):
                return RelayOutcome(RelayStatus.NO_SESSION)

        if message.is_text:
            verdict = self.filter.classify(message.text)
            if verdict.has_violation:
                return RelayOutcome(RelayStatus.FILTERED_AND_RELAYED, partner_id,
                                    InboundMessage.of_text(verdict.masked), reason="bad_words")
            return RelayOutcome(RelayStatus.RELAYED, partner_id, message)

        if partner.safe_mode:
            return RelayOutcome(RelayStatus.BLOCKED_BY_SAFE_MODE, partner_id, reason=message.kind.value)

        if message.caption:
            verdict = self.filter.classify(message.caption)
            if verdict.has_violation:
                return RelayOutcome(RelayStatus.FILTERED_AND_RELAYED, partner_id,
                                    replace(message, caption=verdict.masked), reason="bad_words")
        return RelayOutcome(RelayStatus.RELAYED, partner_id, message)

    def _still_paired(self, sender_id: int, partner_id: int) -> bool:
        return self.engine.partner_of(sender_id) == partner_id

    async def _persist_counters(self, sender: UserRef, report: ViolationReport) -> UserRef:
        if not (report.bad_words or report.links):
            return sender

        def bump(u: UserRef) -> None:
            u.bad_word_total += report.bad_words
            u.link_spam_total += report.links

        return await self.store.update(sender.user_id, bump) or sender
