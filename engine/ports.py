"""
engine/ports.py: interfaces the core is written against (store, transport, text filter).
"""

from __future__ import annotations
from typing import Protocol, Callable, Optional, Dict, Any, List

from .content_filter import Classification
from .models import UserRef, InboundMessage

Mutator = Callable[[UserRef], None]


class UserStore(Protocol):
    async def init(self) -> None: ...
    async def close(self) -> None: ...
    async def get(self, user_id: int) -> Optional[UserRef]: ...
    async def save(self, user: UserRef) -> None: ...
    async def update(self, user_id: int, mutator: Mutator) -> Optional[UserRef]: ...
    async def add_report(self, reporter_id: int, target_id: int, reason: str) -> Optional[int]: ...
    async def resolve_reports(self, target_id: int) -> int: ...
    async def resolve_report(self, report_id: int) -> Optional[int]: ...
    async def list_reports(self, limit: int = 10) -> List[Dict[str, Any]]: ...
    async def list_users(self, offset: int = 0, limit: int = 10, active_only: bool = False) -> List[UserRef]: ...
    async def count_users(self, active_only: bool = False) -> int: ...
    async def record_purchase(self, user_id: int, kind: str, amount: int, days: int = 0, charge_id: str = "",
                              expires_at: Optional[float] = None) -> None: ...
    async def list_purchases(self, user_id: int, limit: int = 10) -> List[Dict[str, Any]]: ...
    async def record_pair_start(self, a: int, b: int) -> None: ...
    async def record_pair_end(self, a: int, b: int) -> None: ...
    async def stats(self, now: float) -> Dict[str, Any]: ...


class Messenger(Protocol):
    async def send(self, user_id: int, text: str, **kw) -> bool: ...
    async def forward(self, to_user_id: int, message: InboundMessage) -> bool: ...
    async def answer_payment(self, payment_id: str, ok: bool, error_message: Optional[str] = None) -> bool: ...


class TextClassifier(Protocol):
    def classify(self, text: Optional[str]) -> Classification: ...
    def count_links(self, text: Optional[str]) -> int: ...
