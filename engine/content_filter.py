"""
engine/content_filter.py: stateless text checks used by relay, abuse tracking
and registration: bad-word detection/masking, link counting, nickname rules.
"""

import re
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

DEFAULT_BAD_WORDS = (
    "spam", "scam", "porn", "xxx", "sex", "nude", "drugs",
    "fuck", "shit", "bitch", "asshole", "dick", "pussy", "nigger", "faggot",
)
RESERVED_NICKNAMES = ("admin", "bot", "official", "telegram", "support")

LINK_RE = re.compile(r"(https?://\S+)|(www\.\S+)|(@[a-zA-Z0-9_]+)|(t\.me/\S+)", re.IGNORECASE)

NICK_MIN, NICK_MAX = 2, 20


@dataclass(frozen=True)
class Classification:
    has_violation: bool
    masked: str
    violation_count: int


class ContentFilter:
    def __init__(self, bad_words: Optional[Iterable[str]] = None):
        words = [w.strip().lower() for w in (bad_words or DEFAULT_BAD_WORDS) if w and w.strip()]
        self.bad_words: Sequence[str] = tuple(dict.fromkeys(words))
        # longest first so "asshole" is masked as a whole before any shorter entry
        self._patterns = [
            (w, re.compile(re.escape(w), re.IGNORECASE))
            for w in sorted(self.bad_words, key=len, reverse=True)
        ]

    def classify(self, text: Optional[str]) -> Classification:
        if not text:
            return Classification(False, text or "", 0)
        masked, count = text, 0
        for word, pattern in self._patterns:
            masked, n = pattern.subn("*" * len(word), masked)
            count += n
        return Classification(count > 0, masked, count)

    def contains_bad_words(self, text: Optional[str]) -> bool:
        if not text:
            return False
        low = text.lower()
        return any(w in low for w in self.bad_words)

    def count_links(self, text: Optional[str]) -> int:
        if not text:
            return 0
        return len(LINK_RE.findall(text))

    def contains_links(self, text: Optional[str]) -> bool:
        return bool(text) and LINK_RE.search(text) is not None

    def is_valid_nickname(self, nickname: Optional[str]) -> bool:
        if not nickname:
            return False
        nick = nickname.strip()
        if not (NICK_MIN <= len(nick) <= NICK_MAX):
            return False
        low = nick.lower()
        if any(word in low for word in RESERVED_NICKNAMES):
            return False
        return not self.contains_bad_words(nick)
