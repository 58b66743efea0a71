"""
Tests for the text helpers and the small per-guild features
(quotes, todos, karma, snipes, rock-paper-scissors).
"""

import random
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from firstly_features import (
    MAX_AUTOCOMPLETE_CHOICES,
    FeatureError,
    add_quote,
    add_todo,
    author_limit_check,
    chunk_lines,
    complete_todo,
    find_emoji,
    get_snipe,
    give_karma,
    humanize,
    karma_leaderboard,
    match_emojis,
    parse_duration,
    play_rps,
    quote_pages,
    random_quote,
    record_deletion,
    regionalize,
    render_todos,
    rps_verdict,
    seconds_since,
)

pytestmark = pytest.mark.unit

GUILD = 10


class TestParseDuration:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("1h30m", 5_400_000),
            ("10m", 600_000),
            ("2d", 172_800_000),
            ("45s", 45_000),
            ("1H 5M", 3_900_000),
        ],
    )
    def test_valid(self, raw, expected):
        assert parse_duration(raw) == expected

    @pytest.mark.parametrize("raw", ["", None, "10", "soon", "0m", "m10"])
    def test_invalid(self, raw):
        assert parse_duration(raw) is None


class TestHumanize:
    def test_compound(self):
        assert humanize(5_400_000) == "1h 30m"

    def test_days(self):
        assert humanize(2 * 86_400_000) == "2d"

    def test_seconds_only_when_short(self):
        assert humanize(45_000) == "45s"
        assert humanize(61_000) == "1m"

    def test_zero(self):
        assert humanize(0) == "0s"


class TestRegionalize:
    def test_letters_become_regional_indicators(self):
        assert regionalize("ab") == "\U0001F1E6 \U0001F1E7"

    def test_case_insensitive(self):
        assert regionalize("Z") == regionalize("z") == "\U0001F1FF"

    def test_spaces_widen_and_others_pass_through(self):
        assert regionalize("a 1") == "\U0001F1E6" + " " * 5 + "1"


class TestChunkLines:
    def test_respects_limit(self):
        lines = [f"{i}. {'x' * 50}\n" for i in range(100)]
        chunks = chunk_lines(lines, limit=200)
        assert "".join(chunks) == "".join(lines)
        assert all(len(chunk) <= 200 for chunk in chunks)

    def test_empty(self):
        assert chunk_lines([]) == []

    def test_long_line_is_hard_split(self):
        chunks = chunk_lines(["a" * 450], limit=200)
        assert [len(chunk) for chunk in chunks] == [200, 200, 50]


class TestEmojiLookup:
    EMOJIS = [SimpleNamespace(name=f"party_{i}") for i in range(40)] + [SimpleNamespace(name="Blob")]

    def test_match_is_case_insensitive_substring(self):
        assert [e.name for e in match_emojis(self.EMOJIS, "LOB")] == ["Blob"]

    def test_match_caps_choices(self):
        assert len(match_emojis(self.EMOJIS, "party")) == MAX_AUTOCOMPLETE_CHOICES

    def test_find_exact_name(self):
        assert find_emoji(self.EMOJIS, "blob").name == "Blob"
        assert find_emoji(self.EMOJIS, "blo") is None


class TestAuthorLimitCheck:
    def test_takes_at_most_amount_from_author(self):
        check = author_limit_check(user_id=5, amount=2)
        authors = [5, 6, 5, 5, 6]
        picked = [check(SimpleNamespace(author=SimpleNamespace(id=a))) for a in authors]
        assert picked == [True, False, True, False, False]


class TestRps:
    @pytest.mark.parametrize(
        "mine, theirs, verdict",
        [
            ("rock", "scissors", "You win!"),
            ("paper", "rock", "You win!"),
            ("scissors", "paper", "You win!"),
            ("rock", "paper", "You lose!"),
            ("paper", "paper", "Tie!"),
        ],
    )
    def test_verdict(self, mine, theirs, verdict):
        assert rps_verdict(mine, theirs) == verdict

    def test_either_participant_may_throw(self):
        result = play_rps(1, 2, 2, "rock", rng=random.Random(3))
        assert result.player_id == 2
        assert result.other_id == 1
        assert result.verdict == rps_verdict("rock", result.other_choice)

    def test_outsider_rejected(self):
        with pytest.raises(FeatureError, match="Not your game"):
            play_rps(1, 2, 3, "rock")


class TestQuotes:
    def test_add_and_random(self, store):
        assert add_quote(store, GUILD, "first") == 1
        assert add_quote(store, GUILD, "second") == 2
        assert random_quote(store, GUILD) in ("first", "second")

    def test_quotes_are_per_guild(self, store):
        add_quote(store, GUILD, "mine")
        with pytest.raises(FeatureError, match="No quotes yet"):
            random_quote(store, GUILD + 1)

    def test_pages_number_entries(self, store):
        add_quote(store, GUILD, "a")
        add_quote(store, GUILD, "b")
        assert quote_pages(store, GUILD) == ["1. a\n2. b\n"]

    def test_oversized_quote_is_split_across_pages(self, store):
        add_quote(store, GUILD, "short")
        add_quote(store, GUILD, "x" * 2500)
        pages = quote_pages(store, GUILD)
        assert len(pages) >= 2
        assert all(len(page) <= 1900 for page in pages)
        assert "".join(pages) == "1. short\n2. " + "x" * 2500 + "\n"

    def test_empty_list(self, store):
        with pytest.raises(FeatureError, match="No quotes yet"):
            quote_pages(store, GUILD)


class TestTodos:
    def test_add_list_done(self, store):
        add_todo(store, 1, "milk")
        add_todo(store, 1, "eggs")
        complete_todo(store, 1, 2)
        assert render_todos(store, 1) == "1. [ ] milk\n2. [x] eggs"

    @pytest.mark.parametrize("number", [0, 3, -1])
    def test_invalid_index(self, store, number):
        add_todo(store, 1, "milk")
        add_todo(store, 1, "eggs")
        with pytest.raises(FeatureError, match="Invalid index"):
            complete_todo(store, 1, number)
        assert not any(item.done for item in store.todos_for(1))

    def test_empty_list(self, store):
        with pytest.raises(FeatureError, match="Your list is empty"):
            render_todos(store, 1)


class TestKarma:
    def test_give_accumulates(self, store):
        assert give_karma(store, GUILD, 7) == 1
        assert give_karma(store, GUILD, 7, 5) == 6

    def test_leaderboard_sorted_and_limited(self, store):
        for user_id in range(15):
            give_karma(store, GUILD, user_id, user_id + 1)
        board = karma_leaderboard(store, GUILD)
        assert len(board) == 10
        assert board[0] == (14, 15)
        assert [points for _, points in board] == sorted((p for _, p in board), reverse=True)

    def test_empty_leaderboard(self, store):
        with pytest.raises(FeatureError, match="No karma yet"):
            karma_leaderboard(store, GUILD)


class TestSnipe:
    def test_latest_deletion_wins(self, store):
        record_deletion(store, 1, "old", "a#1")
        record_deletion(store, 1, "new", "b#2")
        assert get_snipe(store, 1).content == "new"

    def test_missing_fields_default(self, store):
        record = record_deletion(store, 1, None, None)
        assert record.content == ""
        assert record.author_tag == "Unknown"

    def test_nothing_to_snipe(self, store):
        with pytest.raises(FeatureError, match="Nothing to snipe"):
            get_snipe(store, 99)

    def test_seconds_since(self):
        now = datetime(2024, 1, 1, tzinfo=timezone.utc)
        assert seconds_since(now - timedelta(seconds=42), now) == 42
        assert seconds_since(now + timedelta(seconds=5), now) == 0
