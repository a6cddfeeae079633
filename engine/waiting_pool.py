"""
engine/waiting_pool.py: users waiting for a partner.
Two FIFO tiers: premium entries are always scanned before regular ones,
insertion order inside a tier. One entry per user id.
"""

from collections import OrderedDict
from typing import Dict, Iterator, Optional

from .models import Gender, Preference, WaitingEntry


class WaitingPool:
    def __init__(self):
        self._premium: "OrderedDict[int, WaitingEntry]" = OrderedDict()
        self._regular: "OrderedDict[int, WaitingEntry]" = OrderedDict()

    def enqueue(self, user_id: int, gender: Gender, preferred_gender: Preference, is_premium: bool, now: float) -> WaitingEntry:
        self.dequeue_if_present(user_id)
        entry = WaitingEntry(user_id, gender, preferred_gender, now, is_premium)
        (self._premium if is_premium else self._regular)[user_id] = entry
        return entry

    def dequeue_if_present(self, user_id: int) -> Optional[WaitingEntry]:
        entry = self._premium.pop(user_id, None)
        if entry is None:
            entry = self._regular.pop(user_id, None)
        return entry

    def get(self, user_id: int) -> Optional[WaitingEntry]:
        return self._premium.get(user_id) or self._regular.get(user_id)

    def entries(self) -> Iterator[WaitingEntry]:
        yield from self._premium.values()
        yield from self._regular.values()

    def find_match(self, requester_id: int, requester_is_premium: bool, preferred_gender: Preference) -> Optional[int]:
        """First candidate under the matching policy; never mutates the pool."""
        if requester_is_premium and preferred_gender is not Preference.ANY:
            for entry in self._premium.values():
                if entry.user_id != requester_id and preferred_gender.accepts(entry.gender):
                    return entry.user_id
            for entry in self.entries():
                if entry.user_id != requester_id and preferred_gender.accepts(entry.gender):
                    return entry.user_id
            return None
        for entry in self.entries():
            if entry.user_id != requester_id:
                return entry.user_id
        return None

    def size(self) -> int:
        return len(self._premium) + len(self._regular)

    def counts(self) -> Dict[str, int]:
        return {"premium": len(self._premium), "regular": len(self._regular)}

    def __contains__(self, user_id: int) -> bool:
        return user_id in self._premium or user_id in self._regular

    def __len__(self) -> int:
        return self.size()
