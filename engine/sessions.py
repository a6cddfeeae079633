"""
engine/sessions.py: active 1:1 sessions.
Stored as two directed entries (a->b, b->a) so partner lookup is O(1).
"""

from typing import Dict, Iterator, Optional, Tuple


class SessionConflict(RuntimeError):
    """start() called for a user that is already paired (caller skipped the check)."""


class SessionTable:
    def __init__(self):
        self._partner: Dict[int, int] = {}
        self._started: Dict[int, float] = {}

    def start(self, a: int, b: int, now: float = 0.0) -> None:
        if a == b:
            raise SessionConflict(f"cannot pair user {a} with itself")
        busy = [u for u in (a, b) if u in self._partner]
        if busy:
            raise SessionConflict(f"already in session: {busy}")
        self._partner[a] = b
        self._partner[b] = a
        self._started[a] = self._started[b] = now

    def partner_of(self, user_id: int) -> Optional[int]:
        return self._partner.get(user_id)

    def started_at(self, user_id: int) -> Optional[float]:
        return self._started.get(user_id)

    def end(self, user_id: int) -> Optional[int]:
        partner = self._partner.pop(user_id, None)
        if partner is None:
            return None
        self._partner.pop(partner, None)
        self._started.pop(user_id, None)
        self._started.pop(partner, None)
        return partner

    def pairs(self) -> Iterator[Tuple[int, int]]:
        for a, b in self._partner.items():
            if a < b:
                yield a, b

    def count(self) -> int:
        return len(self._partner) // 2

    def __contains__(self, user_id: int) -> bool:
        return user_id in self._partner
