"""Tests for inbox priority ranking."""

from __future__ import annotations

import pytest

from comms_inbox.services.inbox import (
    PRIORITY_AMBIENT,
    PRIORITY_NAME_MENTION,
    PRIORITY_STRUCTURED_MENTION,
    classify,
)


class TestClassify:
    """Tests for classify()."""

    def test_name_mention(self, user_factory, post_factory):
        bob = user_factory("u-bob", name="bob")
        assert classify(bob, post_factory(text="hi @@bob")) == PRIORITY_NAME_MENTION

    def test_structured_mention(self, user_factory, post_factory):
        bob = user_factory("u-bob", name="bob")
        post = post_factory(text="hi", mentions={"u-bob": True})
        assert classify(bob, post) == PRIORITY_STRUCTURED_MENTION

    def test_ambient(self, user_factory, post_factory):
        bob = user_factory("u-bob", name="bob")
        assert classify(bob, post_factory(text="hello everyone")) == PRIORITY_AMBIENT

    def test_name_mention_wins_over_structured(self, user_factory, post_factory):
        bob = user_factory("u-bob", name="bob")
        post = post_factory(text="@@bob look", mentions={"u-bob": True})
        assert classify(bob, post) == PRIORITY_NAME_MENTION

    def test_name_match_is_substring(self, user_factory, post_factory):
        """A longer name that starts with the user's name still matches."""
        bob = user_factory("u-bob", name="bob")
        assert classify(bob, post_factory(text="ping @@bobby")) == PRIORITY_NAME_MENTION

    @pytest.mark.parametrize("text", ["@bob", "bob", "@@ bob", "@@Bob"])
    def test_near_misses_are_ambient(self, user_factory, post_factory, text):
        bob = user_factory("u-bob", name="bob")
        assert classify(bob, post_factory(text=text)) == PRIORITY_AMBIENT

    def test_mention_of_someone_else(self, user_factory, post_factory):
        bob = user_factory("u-bob", name="bob")
        post = post_factory(text="@@carol", mentions={"u-carol": True})
        assert classify(bob, post) == PRIORITY_AMBIENT

    def test_lower_is_more_urgent(self):
        assert PRIORITY_NAME_MENTION < PRIORITY_STRUCTURED_MENTION < PRIORITY_AMBIENT
