from __future__ import annotations

import json

import pytest

from jira_connector.errors import CursorDecodeError
from jira_connector.pagination import (
    RESOURCE_PAGE_SIZE,
    Bag,
    PageState,
    decode,
    encode,
    get_page_token_from_offset,
    get_token,
    is_last_page,
    parse_page_token,
)


def test_empty_bag_marshals_to_empty_token():
    assert encode(Bag()) == ""
    assert decode("").current() is None


def test_nested_frames_survive_a_round_trip():
    bag = Bag()
    bag.push(PageState(resource_type_id="site-a"))
    bag.push(PageState(resource_type_id="site-b", token="cursor-2"))
    bag.push(PageState(resource_type_id="group", resource_id="grp-1", token="50"))

    restored = decode(encode(bag))

    assert restored.current() == PageState("group", "grp-1", "50")
    assert restored.states == [PageState("site-a"), PageState("site-b", "", "cursor-2")]
    assert encode(restored) == encode(bag)


def test_marshal_omits_empty_fields():
    bag = Bag()
    bag.push(PageState(resource_type_id="user", token="50"))
    assert json.loads(bag.marshal()) == {"current_state": {"type": "user", "token": "50"}, "states": []}


def test_next_with_empty_token_drops_the_frame():
    bag = Bag()
    bag.push(PageState(resource_type_id="site-a"))
    bag.push(PageState(resource_type_id="site-b"))

    bag.next("")
    assert bag.resource_type_id() == "site-a"

    bag.next("cursor-1")
    assert bag.current() == PageState("site-a", "", "cursor-1")

    bag.next("")
    assert bag.marshal() == ""


@pytest.mark.parametrize(
    "token",
    [
        "not json",
        "[]",
        '{"states": "nope"}',
        '{"states": [], "current_state": {"type": 7}}',
        '{"states": [{"type": "a"}]}',
    ],
)
def test_malformed_tokens_raise_instead_of_restarting(token):
    with pytest.raises(CursorDecodeError):
        decode(token)


def test_get_token_seeds_a_frame_for_the_first_page():
    bag, page_token = get_token("", "group")
    assert page_token == ""
    assert bag.resource_type_id() == "group"


def test_offset_tokens_advance_and_decode():
    bag, offset = parse_page_token("", "user")
    assert offset == 0

    next_token = get_page_token_from_offset(bag, offset + RESOURCE_PAGE_SIZE)
    _, next_offset = parse_page_token(next_token, "user")

    assert next_offset == RESOURCE_PAGE_SIZE


@pytest.mark.parametrize("page_token", ["abc", "-5"])
def test_bad_offsets_are_rejected(page_token):
    bag = Bag()
    bag.push(PageState(resource_type_id="user", token=page_token))
    with pytest.raises(CursorDecodeError):
        parse_page_token(bag.marshal(), "user")


def test_last_page_iff_short_page():
    size = 10
    for count in range(0, size + 1):
        assert is_last_page(count, size) is (count < size)
