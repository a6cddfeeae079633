"""
engine/database.py: user store backends for the chat core
- MemoryUserStore: tests and single-process dev runs
- SQLiteUserStore: default (aiosqlite)
- PGUserStore: Postgres via asyncpg pool (STORE_BACKEND=postgres)
Tables (auto-created):
  users(user_id PK, gender, nickname, username, language, is_premium, premium_expires_at, is_active, ban_expires_at,
        ban_reason, safe_mode, bad_word_total, link_spam_total, report_total, warning_count, joined_at)
  reports(id, reporter_id, target_id, reason, created_at, resolved)   one open report per (reporter, target)
  pairs(user_a, user_b, started_at, ended_at NULL)
  purchases(id, user_id, kind, days, amount, charge_id, created_at, expires_at)   premium history and reveals
update(user_id, mutator) is read-modify-write under a per-store lock (SQLite/memory)
or a row lock (Postgres), so counters never lose increments.
"""
import asyncio
import logging
import os
import time
from dataclasses import asdict, replace
from typing import Any, Dict, List, Optional, Tuple

import aiosqlite
import asyncpg

from .models import Gender, UserRef
from .ports import Mutator, UserStore

log = logging.getLogger(__name__)

DAY = 86400

USERS_SQL = """
CREATE TABLE IF NOT EXISTS users (
  user_id              BIGINT PRIMARY KEY,
  gender               TEXT NOT NULL,
  nickname             TEXT DEFAULT '',
  username             TEXT,
  language             TEXT DEFAULT 'en',
  is_premium           INTEGER DEFAULT 0,
  premium_expires_at   DOUBLE PRECISION,
  is_active            INTEGER DEFAULT 1,
  ban_expires_at       DOUBLE PRECISION,
  ban_reason           TEXT,
  safe_mode            INTEGER DEFAULT 1,
  bad_word_total       INTEGER DEFAULT 0,
  link_spam_total      INTEGER DEFAULT 0,
  report_total         INTEGER DEFAULT 0,
  warning_count        INTEGER DEFAULT 0,
  joined_at            DOUBLE PRECISION
);
"""
REPORTS_SQL_SQLITE = """
CREATE TABLE IF NOT EXISTS reports (
  id          INTEGER PRIMARY KEY,
  reporter_id BIGINT,
  target_id   BIGINT,
  reason      TEXT,
  created_at  DOUBLE PRECISION,
  resolved    INTEGER DEFAULT 0
);
"""
REPORTS_SQL_PG = """
CREATE TABLE IF NOT EXISTS reports (
  id          BIGSERIAL PRIMARY KEY,
  reporter_id BIGINT,
  target_id   BIGINT,
  reason      TEXT,
  created_at  DOUBLE PRECISION,
  resolved    INTEGER DEFAULT 0
);
"""
REPORTS_OPEN_IDX = "CREATE UNIQUE INDEX IF NOT EXISTS ux_reports_open ON reports(reporter_id, target_id) WHERE resolved = 0"
PAIRS_SQL = """
CREATE TABLE IF NOT EXISTS pairs (
  user_a     BIGINT,
  user_b     BIGINT,
  started_at DOUBLE PRECISION,
  ended_at   DOUBLE PRECISION
);
"""
PURCHASES_SQL_SQLITE = """
CREATE TABLE IF NOT EXISTS purchases (
  id          INTEGER PRIMARY KEY,
  user_id     BIGINT,
  kind        TEXT,
  days        INTEGER DEFAULT 0,
  amount      INTEGER DEFAULT 0,
  charge_id   TEXT,
  created_at  DOUBLE PRECISION,
  expires_at  DOUBLE PRECISION
);
"""
PURCHASES_SQL_PG = PURCHASES_SQL_SQLITE.replace("INTEGER PRIMARY KEY", "BIGSERIAL PRIMARY KEY")

USER_COLUMNS = (
    "user_id", "gender", "nickname", "username", "language", "is_premium", "premium_expires_at", "is_active",
    "ban_expires_at", "ban_reason", "safe_mode", "bad_word_total", "link_spam_total", "report_total",
    "warning_count", "joined_at",
)
_BOOL_COLUMNS = ("is_premium", "is_active", "safe_mode")


def _to_row(u: UserRef) -> Tuple[Any, ...]:
    d = asdict(u)
    d["gender"] = u.gender.value
    for k in _BOOL_COLUMNS:
        d[k] = 1 if d[k] else 0
    return tuple(d[c] for c in USER_COLUMNS)


def _from_row(row) -> Optional[UserRef]:
    if row is None:
        return None
    d = dict(zip(USER_COLUMNS, tuple(row)))
    d["gender"] = Gender(d["gender"])
    d["nickname"] = d["nickname"] or ""
    d["language"] = d["language"] or "en"
    for k in _BOOL_COLUMNS:
        d[k] = bool(d[k])
    if d["joined_at"] is None:
        d["joined_at"] = 0.0
    return UserRef(**d)


def _report_dict(row) -> Dict[str, Any]:
    r = dict(zip(("id", "reporter_id", "target_id", "reason", "created_at", "resolved"), tuple(row)))
    r["resolved"] = bool(r["resolved"])
    return r


PURCHASE_COLUMNS = ("id", "user_id", "kind", "days", "amount", "charge_id", "created_at", "expires_at")


def _purchase_dict(row) -> Dict[str, Any]:
    return dict(zip(PURCHASE_COLUMNS, tuple(row)))


# --- Implementations ---
class MemoryUserStore:
    """Dict-backed store; rows are copied in and out so callers never share state with it."""

    def __init__(self):
        self._users: Dict[int, UserRef] = {}
        self._reports: List[Dict[str, Any]] = []
        self._pairs: List[Dict[str, Any]] = []
        self._purchases: List[Dict[str, Any]] = []
        self._lock = asyncio.Lock()

    async def init(self) -> None:
        return None

    async def close(self) -> None:
        return None

    async def get(self, user_id: int) -> Optional[UserRef]:
        u = self._users.get(user_id)
        return replace(u) if u else None

    async def save(self, user: UserRef) -> None:
        self._users[user.user_id] = replace(user)

    async def update(self, user_id: int, mutator: Mutator) -> Optional[UserRef]:
        async with self._lock:
            u = self._users.get(user_id)
            if u is None:
                return None
            u = replace(u)
            mutator(u)
            self._users[user_id] = u
            return replace(u)

    async def add_report(self, reporter_id: int, target_id: int, reason: str) -> Optional[int]:
        async with self._lock:
            open_reporters = {r["reporter_id"] for r in self._reports if r["target_id"] == target_id and not r["resolved"]}
            if reporter_id in open_reporters:
                return None
            self._reports.append({
                "id": len(self._reports) + 1, "reporter_id": reporter_id, "target_id": target_id,
                "reason": reason, "created_at": time.time(), "resolved": False,
            })
            total = len(open_reporters) + 1
            if target_id in self._users:
                self._users[target_id].report_total = total
            return total

    async def resolve_reports(self, target_id: int) -> int:
        n = 0
        for r in self._reports:
            if r["target_id"] == target_id and not r["resolved"]:
                r["resolved"] = True
                n += 1
        return n

    async def resolve_report(self, report_id: int) -> Optional[int]:
        async with self._lock:
            report = next((r for r in self._reports if r["id"] == report_id and not r["resolved"]), None)
            if report is None:
                return None
            report["resolved"] = True
            target_id = report["target_id"]
            if target_id in self._users:
                self._users[target_id].report_total = len(
                    {r["reporter_id"] for r in self._reports if r["target_id"] == target_id and not r["resolved"]})
            return target_id

    async def list_reports(self, limit: int = 10) -> List[Dict[str, Any]]:
        return [dict(r) for r in reversed(self._reports)][:limit]

    async def list_users(self, offset: int = 0, limit: int = 10, active_only: bool = False) -> List[UserRef]:
        users = sorted(self._users.values(), key=lambda u: (u.joined_at, u.user_id), reverse=True)
        if active_only:
            users = [u for u in users if u.is_active]
        return [replace(u) for u in users[offset:offset + limit]]

    async def count_users(self, active_only: bool = False) -> int:
        return sum(1 for u in self._users.values() if u.is_active or not active_only)

    async def record_purchase(self, user_id: int, kind: str, amount: int, days: int = 0, charge_id: str = "",
                              expires_at: Optional[float] = None) -> None:
        self._purchases.append({
            "id": len(self._purchases) + 1, "user_id": user_id, "kind": kind, "days": days, "amount": amount,
            "charge_id": charge_id, "created_at": time.time(), "expires_at": expires_at,
        })

    async def list_purchases(self, user_id: int, limit: int = 10) -> List[Dict[str, Any]]:
        return [dict(p) for p in reversed(self._purchases) if p["user_id"] == user_id][:limit]

    async def record_pair_start(self, a: int, b: int) -> None:
        self._pairs.append({"user_a": a, "user_b": b, "started_at": time.time(), "ended_at": None})

    async def record_pair_end(self, a: int, b: int) -> None:
        now = time.time()
        for p in self._pairs:
            if p["ended_at"] is None and {p["user_a"], p["user_b"]} == {a, b}:
                p["ended_at"] = now

    async def stats(self, now: float) -> Dict[str, Any]:
        users = list(self._users.values())
        return {
            "users_total": len(users),
            "premium_active": sum(1 for u in users if u.premium_active(now)),
            "banned": sum(1 for u in users if not u.is_active),
            "reports_open": sum(1 for r in self._reports if not r["resolved"]),
            "pairs_total": len(self._pairs),
            "pairs_24h": sum(1 for p in self._pairs if p["started_at"] >= now - DAY),
        }


class SQLiteUserStore:
    def __init__(self, path: str):
        self.path = path
        self._lock = asyncio.Lock()

    async def init(self, reset: bool = False) -> None:
        os.makedirs(os.path.dirname(self.path) or ".", exist_ok=True)
        if reset and os.path.exists(self.path):
            os.remove(self.path)
        async with aiosqlite.connect(self.path) as db:
            await db.execute(USERS_SQL)
            await db.execute(REPORTS_SQL_SQLITE)
            await db.execute(REPORTS_OPEN_IDX)
            await db.execute(PAIRS_SQL)
            await db.execute(PURCHASES_SQL_SQLITE)
            await db.commit()
        log.info("sqlite store ready at %s", self.path)

    async def close(self) -> None:
        return None

    async def get(self, user_id: int) -> Optional[UserRef]:
        async with aiosqlite.connect(self.path) as db:
            cur = await db.execute(f"SELECT {', '.join(USER_COLUMNS)} FROM users WHERE user_id=?", (user_id,))
            return _from_row(await cur.fetchone())

    async def save(self, user: UserRef) -> None:
        async with aiosqlite.connect(self.path) as db:
            await self._write(db, user)
            await db.commit()

    async def _write(self, db, user: UserRef) -> None:
        cols = ", ".join(USER_COLUMNS)
        marks = ", ".join("?" for _ in USER_COLUMNS)
        updates = ", ".join(f"{c}=excluded.{c}" for c in USER_COLUMNS[1:])
        await db.execute(
            f"INSERT INTO users ({cols}) VALUES ({marks}) ON CONFLICT(user_id) DO UPDATE SET {updates}",
            _to_row(user),
        )

    async def update(self, user_id: int, mutator: Mutator) -> Optional[UserRef]:
        async with self._lock:
            async with aiosqlite.connect(self.path) as db:
                cur = await db.execute(f"SELECT {', '.join(USER_COLUMNS)} FROM users WHERE user_id=?", (user_id,))
                u = _from_row(await cur.fetchone())
                if u is None:
                    return None
                mutator(u)
                await self._write(db, u)
                await db.commit()
                return u

    async def add_report(self, reporter_id: int, target_id: int, reason: str) -> Optional[int]:
        async with self._lock:
            async with aiosqlite.connect(self.path) as db:
                cur = await db.execute("""
                  INSERT INTO reports (reporter_id, target_id, reason, created_at, resolved)
                  VALUES (?,?,?,?,0)
                  ON CONFLICT(reporter_id, target_id) WHERE resolved = 0 DO NOTHING
                """, (reporter_id, target_id, reason, time.time()))
                if cur.rowcount == 0:
                    return None
                cur = await db.execute(
                    "SELECT COUNT(DISTINCT reporter_id) FROM reports WHERE target_id=? AND resolved=0", (target_id,))
                (total,) = await cur.fetchone()
                await db.execute("UPDATE users SET report_total=? WHERE user_id=?", (total, target_id))
                await db.commit()
                return total

    async def resolve_reports(self, target_id: int) -> int:
        async with aiosqlite.connect(self.path) as db:
            cur = await db.execute("UPDATE reports SET resolved=1 WHERE target_id=? AND resolved=0", (target_id,))
            await db.commit()
            return cur.rowcount

    async def resolve_report(self, report_id: int) -> Optional[int]:
        async with self._lock:
            async with aiosqlite.connect(self.path) as db:
                cur = await db.execute("SELECT target_id FROM reports WHERE id=? AND resolved=0", (report_id,))
                row = await cur.fetchone()
                if row is None:
                    return None
                target_id = row[0]
                await db.execute("UPDATE reports SET resolved=1 WHERE id=?", (report_id,))
                await db.execute("""
                  UPDATE users SET report_total=(
                    SELECT COUNT(DISTINCT reporter_id) FROM reports WHERE target_id=? AND resolved=0
                  ) WHERE user_id=?
                """, (target_id, target_id))
                await db.commit()
                return target_id

    async def list_reports(self, limit: int = 10) -> List[Dict[str, Any]]:
        async with aiosqlite.connect(self.path) as db:
            cur = await db.execute(
                "SELECT id, reporter_id, target_id, reason, created_at, resolved FROM reports ORDER BY id DESC LIMIT ?",
                (limit,))
            return [_report_dict(r) for r in await cur.fetchall()]

    async def list_users(self, offset: int = 0, limit: int = 10, active_only: bool = False) -> List[UserRef]:
        where = "WHERE is_active=1" if active_only else ""
        async with aiosqlite.connect(self.path) as db:
            cur = await db.execute(
                f"SELECT {', '.join(USER_COLUMNS)} FROM users {where} ORDER BY joined_at DESC, user_id DESC LIMIT ? OFFSET ?",
                (limit, offset))
            return [_from_row(r) for r in await cur.fetchall()]

    async def count_users(self, active_only: bool = False) -> int:
        where = "WHERE is_active=1" if active_only else ""
        async with aiosqlite.connect(self.path) as db:
            cur = await db.execute(f"SELECT COUNT(*) FROM users {where}")
            (n,) = await cur.fetchone()
            return int(n)

    async def record_purchase(self, user_id: int, kind: str, amount: int, days: int = 0, charge_id: str = "",
                              expires_at: Optional[float] = None) -> None:
        async with aiosqlite.connect(self.path) as db:
            await db.execute("""
              INSERT INTO purchases (user_id, kind, days, amount, charge_id, created_at, expires_at)
              VALUES (?,?,?,?,?,?,?)
            """, (user_id, kind, days, amount, charge_id, time.time(), expires_at))
            await db.commit()

    async def list_purchases(self, user_id: int, limit: int = 10) -> List[Dict[str, Any]]:
        async with aiosqlite.connect(self.path) as db:
            cur = await db.execute(
                f"SELECT {', '.join(PURCHASE_COLUMNS)} FROM purchases WHERE user_id=? ORDER BY id DESC LIMIT ?",
                (user_id, limit))
            return [_purchase_dict(r) for r in await cur.fetchall()]

    async def record_pair_start(self, a: int, b: int) -> None:
        async with aiosqlite.connect(self.path) as db:
            await db.execute("INSERT INTO pairs (user_a, user_b, started_at, ended_at) VALUES (?,?,?,NULL)", (a, b, time.time()))
            await db.commit()

    async def record_pair_end(self, a: int, b: int) -> None:
        async with aiosqlite.connect(self.path) as db:
            await db.execute("""
              UPDATE pairs SET ended_at=? WHERE ended_at IS NULL AND (
                (user_a=? AND user_b=?) OR (user_a=? AND user_b=?)
              )
            """, (time.time(), a, b, b, a))
            await db.commit()

    async def stats(self, now: float) -> Dict[str, Any]:
        async with aiosqlite.connect(self.path) as db:
            async def one(sql: str, *params) -> int:
                cur = await db.execute(sql, params)
                row = await cur.fetchone()
                return int(row[0] or 0)

            return {
                "users_total": await one("SELECT COUNT(*) FROM users"),
                "premium_active": await one("SELECT COUNT(*) FROM users WHERE is_premium=1 AND premium_expires_at > ?", now),
                "banned": await one("SELECT COUNT(*) FROM users WHERE is_active=0"),
                "reports_open": await one("SELECT COUNT(*) FROM reports WHERE resolved=0"),
                "pairs_total": await one("SELECT COUNT(*) FROM pairs"),
                "pairs_24h": await one("SELECT COUNT(*) FROM pairs WHERE started_at >= ?", now - DAY),
            }


class PGUserStore:
    def __init__(self, dsn: str, min_size: int = 1, max_size: int = 15, timeout: float = 10):
        self.dsn = dsn
        self.min_size = min_size
        self.max_size = max_size
        self.timeout = timeout
        self.pool = None

    async def init(self) -> None:
        self.pool = await asyncpg.create_pool(self.dsn, min_size=self.min_size, max_size=self.max_size, timeout=self.timeout)
        async with self.pool.acquire() as con:
            await con.execute(USERS_SQL)
            await con.execute(REPORTS_SQL_PG)
            await con.execute(REPORTS_OPEN_IDX)
            await con.execute(PAIRS_SQL)
            await con.execute(PURCHASES_SQL_PG)
            await con.execute("CREATE INDEX IF NOT EXISTS idx_pairs_started ON pairs(started_at)")
        log.info("postgres store ready (pool %d..%d)", self.min_size, self.max_size)

    async def close(self) -> None:
        if self.pool is not None:
            await self.pool.close()
            self.pool = None

    async def get(self, user_id: int) -> Optional[UserRef]:
        async with self.pool.acquire() as con:
            r = await con.fetchrow(f"SELECT {', '.join(USER_COLUMNS)} FROM users WHERE user_id=$1", user_id)
            return _from_row(r)

    async def save(self, user: UserRef) -> None:
        async with self.pool.acquire() as con:
            await self._write(con, user)

    async def _write(self, con, user: UserRef) -> None:
        cols = ", ".join(USER_COLUMNS)
        marks = ", ".join(f"${i + 1}" for i in range(len(USER_COLUMNS)))
        updates = ", ".join(f"{c}=EXCLUDED.{c}" for c in USER_COLUMNS[1:])
        await con.execute(
            f"INSERT INTO users ({cols}) VALUES ({marks}) ON CONFLICT (user_id) DO UPDATE SET {updates}",
            *_to_row(user),
        )

    async def update(self, user_id: int, mutator: Mutator) -> Optional[UserRef]:
        async with self.pool.acquire() as con:
            async with con.transaction():
                r = await con.fetchrow(f"SELECT {', '.join(USER_COLUMNS)} FROM users WHERE user_id=$1 FOR UPDATE", user_id)
                u = _from_row(r)
                if u is None:
                    return None
                mutator(u)
                await self._write(con, u)
                return u

    async def add_report(self, reporter_id: int, target_id: int, reason: str) -> Optional[int]:
        async with self.pool.acquire() as con:
            async with con.transaction():
                rid = await con.fetchval("""
                  INSERT INTO reports (reporter_id, target_id, reason, created_at, resolved)
                  VALUES ($1,$2,$3,$4,0)
                  ON CONFLICT (reporter_id, target_id) WHERE resolved = 0 DO NOTHING
                  RETURNING id
                """, reporter_id, target_id, reason, time.time())
                if rid is None:
                    return None
                total = await con.fetchval(
                    "SELECT COUNT(DISTINCT reporter_id) FROM reports WHERE target_id=$1 AND resolved=0", target_id)
                await con.execute("UPDATE users SET report_total=$1 WHERE user_id=$2", total, target_id)
                return int(total)

    async def resolve_reports(self, target_id: int) -> int:
        async with self.pool.acquire() as con:
            status = await con.execute("UPDATE reports SET resolved=1 WHERE target_id=$1 AND resolved=0", target_id)
            # asyncpg returns the command tag, e.g. "UPDATE 3"
            return int(status.split()[-1])

    async def resolve_report(self, report_id: int) -> Optional[int]:
        async with self.pool.acquire() as con:
            async with con.transaction():
                target_id = await con.fetchval(
                    "UPDATE reports SET resolved=1 WHERE id=$1 AND resolved=0 RETURNING target_id", report_id)
                if target_id is None:
                    return None
                await con.execute("""
                  UPDATE users SET report_total=(
                    SELECT COUNT(DISTINCT reporter_id) FROM reports WHERE target_id=$1 AND resolved=0
                  ) WHERE user_id=$1
                """, target_id)
                return int(target_id)

    async def list_reports(self, limit: int = 10) -> List[Dict[str, Any]]:
        async with self.pool.acquire() as con:
            rows = await con.fetch(
                "SELECT id, reporter_id, target_id, reason, created_at, resolved FROM reports ORDER BY id DESC LIMIT $1", limit)
            return [_report_dict(r) for r in rows]

    async def list_users(self, offset: int = 0, limit: int = 10, active_only: bool = False) -> List[UserRef]:
        where = "WHERE is_active=1" if active_only else ""
        async with self.pool.acquire() as con:
            rows = await con.fetch(
                f"SELECT {', '.join(USER_COLUMNS)} FROM users {where} ORDER BY joined_at DESC, user_id DESC LIMIT $1 OFFSET $2",
                limit, offset)
            return [_from_row(r) for r in rows]

    async def count_users(self, active_only: bool = False) -> int:
        where = "WHERE is_active=1" if active_only else ""
        async with self.pool.acquire() as con:
            return int(await con.fetchval(f"SELECT COUNT(*) FROM users {where}"))

    async def record_purchase(self, user_id: int, kind: str, amount: int, days: int = 0, charge_id: str = "",
                              expires_at: Optional[float] = None) -> None:
        async with self.pool.acquire() as con:
            await con.execute("""
              INSERT INTO purchases (user_id, kind, days, amount, charge_id, created_at, expires_at)
              VALUES ($1,$2,$3,$4,$5,$6,$7)
            """, user_id, kind, days, amount, charge_id, time.time(), expires_at)

    async def list_purchases(self, user_id: int, limit: int = 10) -> List[Dict[str, Any]]:
        async with self.pool.acquire() as con:
            rows = await con.fetch(
                f"SELECT {', '.join(PURCHASE_COLUMNS)} FROM purchases WHERE user_id=$1 ORDER BY id DESC LIMIT $2",
                user_id, limit)
            return [_purchase_dict(r) for r in rows]

    async def record_pair_start(self, a: int, b: int) -> None:
        async with self.pool.acquire() as con:
            await con.execute("INSERT INTO pairs (user_a, user_b, started_at, ended_at) VALUES ($1,$2,$3,NULL)", a, b, time.time())

    async def record_pair_end(self, a: int, b: int) -> None:
        async with self.pool.acquire() as con:
            await con.execute("""
              UPDATE pairs SET ended_at=$1 WHERE ended_at IS NULL AND (
                (user_a=$2 AND user_b=$3) OR (user_a=$3 AND user_b=$2)
              )
            """, time.time(), a, b)

    async def stats(self, now: float) -> Dict[str, Any]:
        async with self.pool.acquire() as con:
            r = await con.fetchrow("""
              SELECT
                (SELECT COUNT(*) FROM users)                                              AS users_total,
                (SELECT COUNT(*) FROM users WHERE is_premium=1 AND premium_expires_at > $1) AS premium_active,
                (SELECT COUNT(*) FROM users WHERE is_active=0)                            AS banned,
                (SELECT COUNT(*) FROM reports WHERE resolved=0)                           AS reports_open,
                (SELECT COUNT(*) FROM pairs)                                              AS pairs_total,
                (SELECT COUNT(*) FROM pairs WHERE started_at >= $2)                       AS pairs_24h
            """, now, now - DAY)
            return {k: int(v) for k, v in dict(r).items()}


async def open_store(backend: str = "sqlite", *, sqlite_path: str = "./data/anonchat.sqlite3",
                     pg_dsn: Optional[str] = None, pg_min: int = 1, pg_max: int = 15, pg_timeout: float = 10) -> UserStore:
    backend = (backend or "sqlite").lower()
    if backend == "memory":
        store = MemoryUserStore()
    elif backend in ("postgres", "pg"):
        if not pg_dsn:
            raise ValueError("PG_DSN is required for the postgres backend")
        store = PGUserStore(pg_dsn, pg_min, pg_max, pg_timeout)
    elif backend == "sqlite":
        store = SQLiteUserStore(sqlite_path)
    else:
        raise ValueError(f"unknown store backend: {backend!r}")
    await store.init()
    log.info("store backend: %s", backend)
    return store
