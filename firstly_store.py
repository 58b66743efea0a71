import asyncio
import copy
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Callable, Generic, Iterator, TypeVar

logger = logging.getLogger("firstlybot.store")

T = TypeVar("T")


def make_session_id(prefix: str = "id") -> str:
    return f"{prefix}_{uuid.uuid4().hex[:8]}"


# =========================
# RECORDS
# =========================
@dataclass
class PollOption:
    label: str
    count: int = 0


@dataclass
class Poll:
    question: str
    options: list[PollOption]
    multiple: bool = False
    voters: dict[int, int] = field(default_factory=dict)
    multi_voters: set[tuple[int, int]] = field(default_factory=set)
    message_id: int | None = None
    channel_id: int | None = None

    @property
    def total_votes(self) -> int:
        return sum(option.count for option in self.options)


@dataclass
class TicTacToeGame:
    players: tuple[int, int]
    turn: int = 0
    board: list[str | None] = field(default_factory=lambda: [None] * 9)
    message_id: int | None = None
    channel_id: int | None = None

    @property
    def current_player(self) -> int:
        return self.players[self.turn]


@dataclass
class Giveaway:
    prize: str
    ends_at: datetime
    entrants: set[int] = field(default_factory=set)
    message_id: int | None = None
    channel_id: int | None = None


@dataclass
class TodoItem:
    text: str
    done: bool = False


@dataclass
class SnipeRecord:
    content: str
    author_tag: str
    deleted_at: datetime


# =========================
# SESSION TABLES
# =========================
class StaleSessionError(RuntimeError):
    def __init__(self, key: str, expected: int, actual: int | None):
        super().__init__(f"session {key} changed (expected version {expected}, found {actual})")
        self.key = key
        self.expected = expected
        self.actual = actual


class SessionTable(Generic[T]):
    """Sessions keyed by generated id, each with a version bumped on every commit."""

    def __init__(self, name: str):
        self.name = name
        self._records: dict[str, T] = {}
        self._versions: dict[str, int] = {}

    def __contains__(self, key: object) -> bool:
        return key in self._records

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[str]:
        return iter(self._records)

    def get(self, key: str) -> T | None:
        return self._records.get(key)

    def version(self, key: str) -> int | None:
        return self._versions.get(key)

    def read(self, key: str) -> tuple[T, int] | None:
        record = self._records.get(key)
        if record is None:
            return None
        return record, self._versions[key]

    def create(self, key: str, record: T) -> T:
        if key in self._records:
            raise KeyError(f"{self.name} session {key} already exists")
        self._records[key] = record
        self._versions[key] = 0
        logger.debug("session_created table=%s key=%s", self.name, key)
        return record

    def commit(self, key: str, record: T, expected_version: int) -> int:
        actual = self._versions.get(key)
        if actual != expected_version:
            raise StaleSessionError(key, expected_version, actual)
        self._records[key] = record
        self._versions[key] = actual + 1
        return actual + 1

    def update(self, key: str, mutate: Callable[[T], None]) -> T | None:
        """Apply ``mutate`` to a copy of the current record and commit it in one step."""
        current = self.read(key)
        if current is None:
            return None
        record, version = current
        updated = copy.deepcopy(record)
        mutate(updated)
        self.commit(key, updated, version)
        return updated

    def pop(self, key: str) -> T | None:
        self._versions.pop(key, None)
        record = self._records.pop(key, None)
        if record is not None:
            logger.debug("session_freed table=%s key=%s", self.name, key)
        return record


# =========================
# TIMERS
# =========================
class SessionTimers:
    """Fire-once asyncio timers keyed by session id."""

    def __init__(self):
        self._tasks: dict[str, asyncio.Task] = {}

    def __contains__(self, key: object) -> bool:
        return key in self._tasks

    def __len__(self) -> int:
        return len(self._tasks)

    def schedule(self, key: str, delay_seconds: float, callback: Callable[[], Awaitable[None]]) -> asyncio.Task:
        self.cancel(key)
        task = asyncio.get_running_loop().create_task(self._fire(key, delay_seconds, callback))
        self._tasks[key] = task
        return task

    def cancel(self, key: str) -> bool:
        task = self._tasks.pop(key, None)
        if task is None:
            return False
        task.cancel()
        logger.debug("timer_cancelled key=%s", key)
        return True

    def cancel_all(self):
        for key in list(self._tasks):
            self.cancel(key)

    async def _fire(self, key: str, delay_seconds: float, callback: Callable[[], Awaitable[None]]):
        await asyncio.sleep(max(delay_seconds, 0))
        if self._tasks.get(key) is asyncio.current_task():
            del self._tasks[key]
        try:
            await callback()
        except Exception:
            logger.exception("timer_callback_failed key=%s", key)


# =========================
# STORE
# =========================
class EphemeralStore:
    """All bot state. Built once at startup and handed to every handler; lost on restart."""

    def __init__(self):
        self.polls: SessionTable[Poll] = SessionTable("polls")
        self.games: SessionTable[TicTacToeGame] = SessionTable("ttt")
        self.giveaways: SessionTable[Giveaway] = SessionTable("giveaways")
        self.quotes: dict[int, list[str]] = {}
        self.todos: dict[int, list[TodoItem]] = {}
        self.karma: dict[int, dict[int, int]] = {}
        self.snipes: dict[int, SnipeRecord] = {}
        self.timers = SessionTimers()

    def quotes_for(self, guild_id: int) -> list[str]:
        return self.quotes.setdefault(guild_id, [])

    def todos_for(self, user_id: int) -> list[TodoItem]:
        return self.todos.setdefault(user_id, [])

    def karma_for(self, guild_id: int) -> dict[int, int]:
        return self.karma.setdefault(guild_id, {})
