"""
Tests for button polls: creation, single-vote moves and multi-vote toggles.
"""

import pytest

from firstly_features import FeatureError, create_poll, record_vote, split_poll_options


pytestmark = pytest.mark.unit


class TestPollCreation:
    def test_creates_poll_with_zeroed_options(self, store):
        poll_id, poll = create_poll(store, "Best color?", "Red;Blue;Green")

        assert poll_id.startswith("poll_")
        assert store.polls.get(poll_id) is poll
        assert [(o.label, o.count) for o in poll.options] == [("Red", 0), ("Blue", 0), ("Green", 0)]
        assert poll.voters == {}
        assert poll.multiple is False

    def test_options_are_trimmed_and_capped_at_five(self):
        assert split_poll_options(" a ; b;;c;d;e;f ") == ["a", "b", "c", "d", "e"]

    def test_requires_two_options(self, store):
        with pytest.raises(FeatureError, match="at least 2 options"):
            create_poll(store, "Lonely?", "only one; ;")
        assert len(store.polls) == 0


class TestSingleVote:
    def test_vote_then_change_vote_end_to_end(self, store):
        """Poll scenario: vote for 1, then switch to 2, total stays 1."""
        poll_id, _ = create_poll(store, "Best color?", "Red;Blue;Green")

        poll = record_vote(store, poll_id, user_id=7, index=1)
        assert poll.options[1].count == 1
        assert poll.voters == {7: 1}

        poll = record_vote(store, poll_id, user_id=7, index=2)
        assert poll.options[1].count == 0
        assert poll.options[2].count == 1
        assert poll.voters == {7: 2}
        assert poll.total_votes == 1

    def test_repeat_vote_is_rejected(self, store):
        poll_id, _ = create_poll(store, "Q", "a;b")
        record_vote(store, poll_id, 1, 0)
        version = store.polls.version(poll_id)

        with pytest.raises(FeatureError, match="already voted"):
            record_vote(store, poll_id, 1, 0)

        assert store.polls.version(poll_id) == version
        assert store.polls.get(poll_id).options[0].count == 1

    def test_total_equals_distinct_voters(self, store):
        poll_id, _ = create_poll(store, "Q", "a;b;c")
        clicks = [(1, 0), (2, 1), (1, 2), (3, 2), (2, 0), (1, 1), (4, 0)]
        for user_id, index in clicks:
            record_vote(store, poll_id, user_id, index)

        poll = store.polls.get(poll_id)
        assert poll.total_votes == len(poll.voters) == 4
        assert [o.count for o in poll.options] == [2, 1, 1]

    def test_unknown_poll(self, store):
        with pytest.raises(FeatureError, match="Poll expired"):
            record_vote(store, "poll_missing", 1, 0)

    def test_out_of_range_option(self, store):
        poll_id, _ = create_poll(store, "Q", "a;b")
        with pytest.raises(FeatureError):
            record_vote(store, poll_id, 1, 5)


class TestMultiVote:
    def test_clicks_toggle_per_option(self, store):
        poll_id, _ = create_poll(store, "Q", "a;b", multiple=True)

        record_vote(store, poll_id, 1, 0)
        record_vote(store, poll_id, 1, 1)
        poll = record_vote(store, poll_id, 2, 1)
        assert [o.count for o in poll.options] == [1, 2]

        poll = record_vote(store, poll_id, 1, 1)
        assert [o.count for o in poll.options] == [1, 1]
        assert (1, 1) not in poll.multi_voters
        assert poll.voters == {}

    def test_double_click_cancels_out(self, store):
        poll_id, _ = create_poll(store, "Q", "a;b", multiple=True)
        record_vote(store, poll_id, 9, 0)
        poll = record_vote(store, poll_id, 9, 0)
        assert poll.total_votes == 0
