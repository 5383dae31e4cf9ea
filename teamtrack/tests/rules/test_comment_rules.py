import pytest

from teamtrack.core.exceptions import CommentValidationError
from teamtrack.rules.comments import (
    member_reaction,
    reaction_counts,
    toggle_reaction,
    validate_new_comment,
)
from teamtrack.store.base import SERVER_TIMESTAMP

THUMBS = "👍"
HEART = "❤️"


def as_sets(reactions):
    return {emoji: set(ids) for emoji, ids in reactions.items()}


def test_first_reaction_is_added():
    assert toggle_reaction({}, "u", THUMBS) == {THUMBS: ["u"]}


def test_switching_emoji_removes_previous_entry_entirely():
    after_thumbs = toggle_reaction({}, "u", THUMBS)
    after_heart = toggle_reaction(after_thumbs, "u", HEART)
    assert after_heart == {HEART: ["u"]}
    assert THUMBS not in after_heart


def test_same_emoji_twice_is_a_no_op_pair():
    original = {THUMBS: ["v"], HEART: ["w"]}
    once = toggle_reaction(original, "u", THUMBS)
    assert as_sets(once) == {THUMBS: {"v", "u"}, HEART: {"w"}}
    twice = toggle_reaction(once, "u", THUMBS)
    assert as_sets(twice) == as_sets(original)


def test_toggling_own_reaction_twice_restores_it():
    original = {THUMBS: ["u", "v"]}
    twice = toggle_reaction(toggle_reaction(original, "u", THUMBS), "u", THUMBS)
    assert as_sets(twice) == as_sets(original)


def test_single_reaction_per_member():
    reactions = {}
    for emoji in (THUMBS, HEART, "🎉", HEART):
        reactions = toggle_reaction(reactions, "u", emoji)
        holders = [e for e, ids in reactions.items() if "u" in ids]
        assert len(holders) <= 1


def test_input_is_not_mutated():
    original = {THUMBS: ["u"]}
    toggle_reaction(original, "u", HEART)
    assert original == {THUMBS: ["u"]}


def test_none_reactions_treated_as_empty():
    assert toggle_reaction(None, "u", THUMBS) == {THUMBS: ["u"]}


def test_empty_emoji_rejected():
    with pytest.raises(CommentValidationError):
        toggle_reaction({}, "u", " ")


def test_member_reaction_and_counts():
    reactions = {THUMBS: ["u", "v"], HEART: ["w"]}
    assert member_reaction(reactions, "w") == HEART
    assert member_reaction(reactions, "x") is None
    assert reaction_counts(reactions) == {THUMBS: 2, HEART: 1}


def test_validate_new_comment():
    doc = validate_new_comment("t1", "u", "  <p>Looks good</p> ")
    assert doc == {
        "task_id": "t1",
        "author_id": "u",
        "text": "<p>Looks good</p>",
        "timestamp": SERVER_TIMESTAMP,
        "reactions": {},
    }


def test_empty_comment_rejected():
    with pytest.raises(CommentValidationError):
        validate_new_comment("t1", "u", "   ")
