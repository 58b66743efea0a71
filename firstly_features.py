import copy
import logging
import random
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable, Sequence

from firstly_store import (
    EphemeralStore,
    Giveaway,
    Poll,
    PollOption,
    SnipeRecord,
    TicTacToeGame,
    TodoItem,
    make_session_id,
)

logger = logging.getLogger("firstlybot.features")

MAX_POLL_OPTIONS = 5
TTT_IDLE_TIMEOUT_SECONDS = 10 * 60
MAX_QUOTE_PAGE_CHARS = 1900
LEADERBOARD_SIZE = 10
MAX_AUTOCOMPLETE_CHOICES = 25
RPS_CHOICES = ("rock", "paper", "scissors")
RPS_BEATS = {"rock": "scissors", "paper": "rock", "scissors": "paper"}
X_MARK = "X"
O_MARK = "O"
TIE = "tie"
IN_PROGRESS = "in_progress"
WIN_LINES = (
    (0, 1, 2), (3, 4, 5), (6, 7, 8),
    (0, 3, 6), (1, 4, 7), (2, 5, 8),
    (0, 4, 8), (2, 4, 6),
)
_DURATION_RE = re.compile(r"(\d+)\s*([dhms])", re.IGNORECASE)
_UNIT_MS = {
    "d": 24 * 60 * 60 * 1000,
    "h": 60 * 60 * 1000,
    "m": 60 * 1000,
    "s": 1000,
}
_REGIONAL_BASE = 0x1F1E6


class FeatureError(Exception):
    """A rejected request. The message is shown to the invoking user only."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


# =========================
# DURATIONS / TEXT
# =========================
def parse_duration(value: str | None) -> int | None:
    """Parse strings such as ``1h30m``, ``10m``, ``2d`` or ``45s`` into milliseconds.

    Returns None when no ``<number><unit>`` token is present or the total is zero.
    """
    if not value:
        return None
    total = sum(int(amount) * _UNIT_MS[unit.lower()] for amount, unit in _DURATION_RE.findall(value))
    return total if total > 0 else None


def humanize(ms: int) -> str:
    seconds = ms // 1000
    days, rem = divmod(seconds, 86400)
    hours, rem = divmod(rem, 3600)
    minutes, secs = divmod(rem, 60)
    parts = []
    if days:
        parts.append(f"{days}d")
    if hours:
        parts.append(f"{hours}h")
    if minutes:
        parts.append(f"{minutes}m")
    if secs and not parts:
        parts.append(f"{secs}s")
    return " ".join(parts) or "0s"


def regionalize(text: str) -> str:
    out = []
    for ch in text.lower():
        if "a" <= ch <= "z":
            out.append(chr(_REGIONAL_BASE + ord(ch) - ord("a")))
        elif ch == " ":
            out.append("   ")
        else:
            out.append(ch)
    return " ".join(out)


def chunk_lines(lines: Iterable[str], limit: int = MAX_QUOTE_PAGE_CHARS) -> list[str]:
    chunks: list[str] = []
    current = ""
    for line in lines:
        for piece in (line[i:i + limit] for i in range(0, len(line), limit)):
            if current and len(current) + len(piece) > limit:
                chunks.append(current)
                current = ""
            current += piece
    if current:
        chunks.append(current)
    return chunks


def match_emojis(emojis: Iterable[object], focused: str) -> list[object]:
    needle = (focused or "").lower()
    matches = [e for e in emojis if getattr(e, "name", None) and needle in e.name.lower()]
    return matches[:MAX_AUTOCOMPLETE_CHOICES]


def find_emoji(emojis: Iterable[object], name: str) -> object | None:
    wanted = name.lower()
    for emoji in emojis:
        if getattr(emoji, "name", None) and emoji.name.lower() == wanted:
            return emoji
    return None


def author_limit_check(user_id: int, amount: int) -> Callable[[object], bool]:
    """Message predicate for purging at most ``amount`` messages written by ``user_id``."""
    taken = 0

    def check(message) -> bool:
        nonlocal taken
        if taken >= amount or message.author.id != user_id:
            return False
        taken += 1
        return True

    return check


# =========================
# POLLS
# =========================
def split_poll_options(raw: str) -> list[str]:
    return [part.strip() for part in raw.split(";") if part.strip()][:MAX_POLL_OPTIONS]


def create_poll(store: EphemeralStore, question: str, raw_options: str, multiple: bool = False) -> tuple[str, Poll]:
    labels = split_poll_options(raw_options)
    if len(labels) < 2:
        raise FeatureError("Provide at least 2 options.")
    poll_id = make_session_id("poll")
    poll = store.polls.create(
        poll_id,
        Poll(question=question, options=[PollOption(label) for label in labels], multiple=bool(multiple)),
    )
    logger.info("poll_created poll_id=%s options=%s multiple=%s", poll_id, len(labels), poll.multiple)
    return poll_id, poll


def record_vote(store: EphemeralStore, poll_id: str, user_id: int, index: int) -> Poll:
    current = store.polls.read(poll_id)
    if current is None:
        raise FeatureError("Poll expired.")
    poll, version = current
    if not 0 <= index < len(poll.options):
        raise FeatureError("That option is no longer available.")
    updated = copy.deepcopy(poll)
    if not updated.multiple:
        previous = updated.voters.get(user_id)
        if previous == index:
            raise FeatureError("You already voted for this option.")
        if previous is not None:
            updated.options[previous].count -= 1
        updated.voters[user_id] = index
        updated.options[index].count += 1
    else:
        key = (user_id, index)
        if key in updated.multi_voters:
            updated.multi_voters.discard(key)
            updated.options[index].count -= 1
        else:
            updated.multi_voters.add(key)
            updated.options[index].count += 1
    store.polls.commit(poll_id, updated, version)
    return updated


# =========================
# TIC-TAC-TOE
# =========================
def evaluate_board(board: Sequence[str | None]) -> str:
    """Return the winning mark, TIE for a full board without a line, or IN_PROGRESS."""
    for a, b, c in WIN_LINES:
        if board[a] and board[a] == board[b] == board[c]:
            return board[a]
    if all(board):
        return TIE
    return IN_PROGRESS


def ensure_human_opponent(challenger_id: int, opponent_id: int, opponent_is_bot: bool):
    if opponent_is_bot or opponent_id == challenger_id:
        raise FeatureError("Pick a different human opponent.")


def start_game(store: EphemeralStore, challenger_id: int, opponent_id: int, opponent_is_bot: bool = False) -> tuple[str, TicTacToeGame]:
    ensure_human_opponent(challenger_id, opponent_id, opponent_is_bot)
    game_id = make_session_id("ttt")
    game = store.games.create(game_id, TicTacToeGame(players=(challenger_id, opponent_id)))
    logger.info("ttt_started game_id=%s players=%s,%s", game_id, challenger_id, opponent_id)
    return game_id, game


def place_mark(store: EphemeralStore, game_id: str, user_id: int, cell: int) -> tuple[TicTacToeGame, str]:
    """Apply one move and return the new game state with its outcome.

    Finished games (win or tie) are removed from the store and their idle timer
    is canceled. Rejected moves raise FeatureError and leave the game untouched.
    """
    current = store.games.read(game_id)
    if current is None:
        raise FeatureError("This game has ended.")
    game, version = current
    if user_id not in game.players:
        raise FeatureError("Not your game.")
    if user_id != game.current_player:
        raise FeatureError("Wait your turn.")
    if not 0 <= cell < 9 or game.board[cell]:
        raise FeatureError("Spot taken.")
    updated = copy.deepcopy(game)
    updated.board[cell] = X_MARK if updated.turn == 0 else O_MARK
    outcome = evaluate_board(updated.board)
    if outcome == IN_PROGRESS:
        updated.turn = 1 - updated.turn
        store.games.commit(game_id, updated, version)
    else:
        store.games.pop(game_id)
        store.timers.cancel(game_id)
        logger.info("ttt_finished game_id=%s outcome=%s", game_id, outcome)
    return updated, outcome


def expire_game(store: EphemeralStore, game_id: str) -> TicTacToeGame | None:
    game = store.games.pop(game_id)
    if game is not None:
        logger.info("ttt_timed_out game_id=%s", game_id)
    return game


def winner_id(game: TicTacToeGame, outcome: str) -> int | None:
    if outcome == X_MARK:
        return game.players[0]
    if outcome == O_MARK:
        return game.players[1]
    return None


# =========================
# ROCK PAPER SCISSORS
# =========================
@dataclass(frozen=True)
class RpsResult:
    player_id: int
    other_id: int
    player_choice: str
    other_choice: str
    verdict: str


def rps_verdict(mine: str, theirs: str) -> str:
    if mine == theirs:
        return "Tie!"
    if RPS_BEATS[mine] == theirs:
        return "You win!"
    return "You lose!"


def play_rps(challenger_id: int, opponent_id: int, user_id: int, choice: str, rng: random.Random | None = None) -> RpsResult:
    if user_id not in (challenger_id, opponent_id):
        raise FeatureError("Not your game.")
    if choice not in RPS_CHOICES:
        raise FeatureError("Unknown move.")
    other_id = opponent_id if user_id == challenger_id else challenger_id
    other_choice = (rng or random).choice(RPS_CHOICES)
    return RpsResult(user_id, other_id, choice, other_choice, rps_verdict(choice, other_choice))


# =========================
# GIVEAWAYS
# =========================
def start_giveaway(store: EphemeralStore, prize: str, duration_ms: int, now: datetime | None = None) -> tuple[str, Giveaway]:
    now = now or datetime.now(timezone.utc)
    giveaway_id = make_session_id("gaw")
    giveaway = store.giveaways.create(
        giveaway_id,
        Giveaway(prize=prize, ends_at=now + timedelta(milliseconds=duration_ms)),
    )
    logger.info("giveaway_started giveaway_id=%s ends_at=%s", giveaway_id, giveaway.ends_at.isoformat())
    return giveaway_id, giveaway


def join_giveaway(store: EphemeralStore, giveaway_id: str, user_id: int) -> bool:
    current = store.giveaways.read(giveaway_id)
    if current is None:
        raise FeatureError("Giveaway ended.")
    giveaway, version = current
    if user_id in giveaway.entrants:
        return False
    updated = copy.deepcopy(giveaway)
    updated.entrants.add(user_id)
    store.giveaways.commit(giveaway_id, updated, version)
    return True


def close_giveaway(store: EphemeralStore, giveaway_id: str, rng: random.Random | None = None) -> tuple[Giveaway | None, int | None]:
    giveaway = store.giveaways.pop(giveaway_id)
    if giveaway is None:
        return None, None
    entrants = sorted(giveaway.entrants)
    winner = (rng or random).choice(entrants) if entrants else None
    logger.info("giveaway_closed giveaway_id=%s entrants=%s winner=%s", giveaway_id, len(entrants), winner)
    return giveaway, winner


# =========================
# QUOTES / TODO / KARMA / SNIPE
# =========================
def add_quote(store: EphemeralStore, guild_id: int, text: str) -> int:
    quotes = store.quotes_for(guild_id)
    quotes.append(text)
    return len(quotes)


def random_quote(store: EphemeralStore, guild_id: int, rng: random.Random | None = None) -> str:
    quotes = store.quotes_for(guild_id)
    if not quotes:
        raise FeatureError("No quotes yet.")
    return (rng or random).choice(quotes)


def quote_pages(store: EphemeralStore, guild_id: int) -> list[str]:
    quotes = store.quotes_for(guild_id)
    if not quotes:
        raise FeatureError("No quotes yet.")
    return chunk_lines(f"{i}. {q}\n" for i, q in enumerate(quotes, start=1))


def add_todo(store: EphemeralStore, user_id: int, text: str) -> int:
    todos = store.todos_for(user_id)
    todos.append(TodoItem(text))
    return len(todos)


def render_todos(store: EphemeralStore, user_id: int) -> str:
    todos = store.todos_for(user_id)
    if not todos:
        raise FeatureError("Your list is empty.")
    return "\n".join(f"{i}. [{'x' if t.done else ' '}] {t.text}" for i, t in enumerate(todos, start=1))


def complete_todo(store: EphemeralStore, user_id: int, number: int) -> TodoItem:
    todos = store.todos_for(user_id)
    if not 1 <= number <= len(todos):
        raise FeatureError("Invalid index.")
    item = todos[number - 1]
    item.done = True
    return item


def give_karma(store: EphemeralStore, guild_id: int, user_id: int, amount: int = 1) -> int:
    table = store.karma_for(guild_id)
    table[user_id] = table.get(user_id, 0) + amount
    return table[user_id]


def karma_leaderboard(store: EphemeralStore, guild_id: int, limit: int = LEADERBOARD_SIZE) -> list[tuple[int, int]]:
    table = store.karma_for(guild_id)
    ranked = sorted(table.items(), key=lambda item: item[1], reverse=True)[:limit]
    if not ranked:
        raise FeatureError("No karma yet.")
    return ranked


def record_deletion(store: EphemeralStore, channel_id: int, content: str | None, author_tag: str | None, now: datetime | None = None) -> SnipeRecord:
    record = SnipeRecord(
        content=content or "",
        author_tag=author_tag or "Unknown",
        deleted_at=now or datetime.now(timezone.utc),
    )
    store.snipes[channel_id] = record
    return record


def get_snipe(store: EphemeralStore, channel_id: int) -> SnipeRecord:
    record = store.snipes.get(channel_id)
    if record is None:
        raise FeatureError("Nothing to snipe.")
    return record


def seconds_since(moment: datetime, now: datetime | None = None) -> int:
    now = now or datetime.now(timezone.utc)
    return max(int((now - moment).total_seconds()), 0)
