import pytest
import pytest_asyncio

from engine.core import build_core
from engine.database import MemoryUserStore
from engine.models import Gender, UserRef

DAY = 86400
NOW = 1_700_000_000.0


class Clock:
    def __init__(self, start: float = NOW) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return Clock()


@pytest_asyncio.fixture
async def store():
    s = MemoryUserStore()
    await s.init()
    yield s
    await s.close()


@pytest.fixture
def core(store, clock):
    return build_core(store, clock=clock)


@pytest.fixture
def register(store, clock):
    async def _register(user_id: int, gender: Gender = Gender.MALE, *, premium_days: float = 0, **fields) -> UserRef:
        user = UserRef(user_id=user_id, gender=gender, nickname=f"user{user_id}", joined_at=clock.now, **fields)
        if premium_days:
            user.is_premium = True
            user.premium_expires_at = clock.now + premium_days * DAY
        await store.save(user)
        return user

    return _register
