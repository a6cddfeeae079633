"""
engine/models.py: domain types shared by the matchmaking core.
UserRef mirrors the persisted user row; everything else here is ephemeral
or a result value handed back to the bot layer.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class Gender(str, Enum):
    MALE = "male"
    FEMALE = "female"


class Preference(str, Enum):
    MALE = "male"
    FEMALE = "female"
    ANY = "any"

    @classmethod
    def parse(cls, raw: Optional[str]) -> "Preference":
        if not raw:
            return cls.ANY
        try:
            return cls(raw.strip().lower())
        except ValueError:
            return cls.ANY

    def accepts(self, gender: Gender) -> bool:
        return self is Preference.ANY or self.value == gender.value


class MessageKind(str, Enum):
    TEXT = "text"
    PHOTO = "photo"
    VIDEO = "video"
    ANIMATION = "animation"
    DOCUMENT = "document"
    AUDIO = "audio"
    VOICE = "voice"
    VIDEO_NOTE = "video_note"
    STICKER = "sticker"


class UserState(str, Enum):
    IDLE = "idle"
    WAITING = "waiting"
    PAIRED = "paired"


@dataclass
class UserRef:
    user_id: int
    gender: Gender
    nickname: str = ""
    username: Optional[str] = None
    language: str = "en"
    is_premium: bool = False
    premium_expires_at: Optional[float] = None
    is_active: bool = True
    ban_expires_at: Optional[float] = None
    ban_reason: Optional[str] = None
    safe_mode: bool = True
    bad_word_total: int = 0
    link_spam_total: int = 0
    report_total: int = 0
    warning_count: int = 0
    joined_at: float = field(default_factory=time.time)

    def premium_active(self, now: float) -> bool:
        return bool(self.is_premium and self.premium_expires_at and now < self.premium_expires_at)

    def premium_expired(self, now: float) -> bool:
        return self.is_premium and not self.premium_active(now)

    def ban_expired(self, now: float) -> bool:
        return (not self.is_active) and self.ban_expires_at is not None and now >= self.ban_expires_at

    def lift_ban(self) -> None:
        """Reactivate and zero every cumulative counter, otherwise the next message re-bans."""
        self.is_active = True
        self.ban_expires_at = None
        self.ban_reason = None
        self.bad_word_total = 0
        self.link_spam_total = 0
        self.report_total = 0
        self.warning_count = 0


@dataclass(frozen=True)
class InboundMessage:
    kind: MessageKind
    text: Optional[str] = None
    file_id: Optional[str] = None
    caption: Optional[str] = None

    @property
    def is_text(self) -> bool:
        return self.kind is MessageKind.TEXT

    @classmethod
    def of_text(cls, text: str) -> "InboundMessage":
        return cls(MessageKind.TEXT, text=text)


@dataclass(frozen=True)
class WaitingEntry:
    user_id: int
    gender: Gender
    preferred_gender: Preference
    enqueued_at: float
    is_premium: bool


# ---- outcomes ----

class MatchStatus(str, Enum):
    ALREADY_IN_SESSION = "already_in_session"
    BANNED = "banned"
    NOT_REGISTERED = "not_registered"
    MATCHED = "matched"
    WAITING = "waiting"


@dataclass(frozen=True)
class MatchResult:
    status: MatchStatus
    partner_id: Optional[int] = None

    @property
    def matched(self) -> bool:
        return self.status is MatchStatus.MATCHED


class RelayStatus(str, Enum):
    NO_SESSION = "no_session"
    SESSION_ENDED_RESTRICTION = "session_ended_restriction"
    AUTO_BANNED = "auto_banned"
    FILTERED_AND_RELAYED = "filtered_and_relayed"
    RELAYED = "relayed"
    BLOCKED_BY_SAFE_MODE = "blocked_by_safe_mode"


@dataclass(frozen=True)
class RelayOutcome:
    status: RelayStatus
    partner_id: Optional[int] = None
    # what should reach the partner; masked when the filter fired
    message: Optional[InboundMessage] = None
    reason: Optional[str] = None


class ReportStatus(str, Enum):
    RECORDED = "recorded"
    ALREADY_REPORTED = "already_reported"
    PREMIUM_IMMUNE = "premium_immune"
    SELF_REPORT = "self_report"
    UNKNOWN_USER = "unknown_user"
    AUTO_BANNED = "auto_banned"


@dataclass(frozen=True)
class ReportResult:
    status: ReportStatus
    total: int = 0
    partner_id: Optional[int] = None


class AdminStatus(str, Enum):
    DONE = "done"
    NOT_FOUND = "not_found"
    NO_CHANGE = "no_change"


@dataclass(frozen=True)
class AdminResult:
    status: AdminStatus
    partner_id: Optional[int] = None
    user: Optional[UserRef] = None
