"""Tests for tolerant field extraction."""

import base64

import pytest

from app.normalizers.fields import (
    PROVIDER_PLACEHOLDER,
    RATING_CANDIDATES,
    REVIEW_ID_CANDIDATES,
    TEXT_CANDIDATES,
    K,
    P,
    decode_base64url,
    deep_search_text,
    extract_text,
    flatten,
    infer_origin,
    looks_like_human_text,
    normalize_key,
    pick,
    resolve,
)


def test_normalize_key():
    assert normalize_key("reviewId") == "reviewid"
    assert normalize_key("Review_ID") == "review.id"
    assert normalize_key("public--URL") == "public.url"


def test_flatten_nested_payload():
    flat = flatten({"review": {"id": "r1", "tags": ["a", "b"]}, "empty": None})

    assert flat == {"review.id": "r1", "review.tags.0": "a", "review.tags.1": "b"}


def test_flatten_keeps_first_value_on_key_collision():
    flat = flatten({"review_id": "first", "Review-ID": "second"})

    assert flat["review.id"] == "first"


def test_candidate_priority_follows_list_order():
    flat = flatten({"id": "generic", "payload": {"review_id": "specific"}})

    match = resolve(flat, REVIEW_ID_CANDIDATES)

    assert match.value == "specific"
    assert match.key == "payload.review.id"


def test_exact_candidate_skips_blank_values():
    flat = flatten({"score": "  ", "rating": 4})

    assert pick(flat, (K("score"), K("rating"))) == 4


def test_pattern_candidate_scans_all_keys():
    flat = flatten({"meta": {"stars": 3}})

    assert pick(flat, RATING_CANDIDATES) == 3
    assert pick(flat, (P(r"missing"),)) is None


@pytest.mark.parametrize(
    "value",
    [
        "ok",
        "Loved it",
        "https://example.com/a/long/path",
        "2025-11-01T12:00:00Z and more",
        "0F3A9B2C-1D4E-4F5A-8B6C-7D8E9F0A1B2C",
        "abcdefghijklmnopqrstuvwxyz",
        42,
        None,
    ],
)
def test_looks_like_human_text_rejects(value):
    assert looks_like_human_text(value) is False


def test_looks_like_human_text_accepts_prose():
    assert looks_like_human_text("Great service and friendly staff")


def test_text_candidate_order_prefers_text_over_comment():
    payload = {"comment": "The comment field with words", "text": "The text field with words"}

    assert extract_text(payload) == "The text field with words"


def test_extract_text_non_strict_accepts_short_text():
    assert extract_text({"id": "r1", "text": "ok"}) == "ok"


def test_extract_text_strict_skips_non_human_candidates():
    payload = {
        "comment": "https://example.com/r/1",
        "details": {"feedback": "The room was clean and the staff were kind"},
    }

    assert extract_text(payload, strict=True) == "The room was clean and the staff were kind"


def test_deep_search_prefers_hinted_keys_over_longer_unhinted():
    payload = {
        "notes": "An internal note that is actually quite a bit longer than the comment",
        "data": {"customer_comment": "Short but real comment here"},
    }

    assert deep_search_text(payload) == "Short but real comment here"


def test_deep_search_falls_back_to_longest_unhinted():
    payload = {"a": "First sentence of text", "b": "A somewhat longer sentence of text"}

    assert deep_search_text(payload) == "A somewhat longer sentence of text"


def test_deep_search_uses_survey_row_label_as_hint():
    payload = {
        "reviewData": [
            {"name": "Staff", "value": "Everyone was very helpful indeed, thanks a lot"},
            {"name": "Comments", "value": "Would happily recommend to friends"},
        ]
    }

    assert deep_search_text(payload) == "Would happily recommend to friends"


def test_deep_search_returns_none_without_human_text():
    assert deep_search_text({"id": "r1", "url": "https://x.test/long/path/here"}) is None


def test_named_text_candidates_cover_common_fields():
    flat = flatten({"snippet": "Snippet text here"})

    assert pick(flat, TEXT_CANDIDATES) == "Snippet text here"


@pytest.mark.parametrize(
    "provider,url,expected",
    [
        ("yelp", None, "YELP"),
        (None, "https://www.google.com/maps/review/1", "GOOGLE"),
        (None, "https://m.yelp.com/biz/x", "YELP"),
        (None, "https://www.facebook.com/page/reviews", "FACEBOOK"),
        (None, "https://fb.com/page", "FACEBOOK"),
        (None, "https://reviews.chatmeter.com/r/1", "REVIEWBUILDER"),
        (None, "https://example.com/r/1", PROVIDER_PLACEHOLDER),
        (None, "not a url", PROVIDER_PLACEHOLDER),
        ("", None, PROVIDER_PLACEHOLDER),
    ],
)
def test_infer_origin(provider, url, expected):
    assert infer_origin(provider, url) == expected


def b64url(text):
    return base64.urlsafe_b64encode(text.encode("utf-8")).decode("ascii").rstrip("=")


def test_row_label_only_hints_the_answer_value():
    payload = {
        "id": "r1",
        "location": {"name": "Review Plaza Hotel", "address": "1234 Some Very Long Street Name Avenue"},
        "notes": {"feedback": "Nice place to stay"},
    }

    assert extract_text(payload) == "Nice place to stay"
    assert extract_text(payload, strict=True) == "Nice place to stay"


def test_decode_base64url_once():
    assert decode_base64url(b64url("Staff were friendly and helpful")) == "Staff were friendly and helpful"


@pytest.mark.parametrize("value", ["A" * 40, "short-token", "not base64 at all, has spaces", 42])
def test_decode_base64url_leaves_other_values_alone(value):
    assert decode_base64url(value) == value


def test_deep_search_decodes_base64url_survey_answer():
    payload = {"reviewData": [{"name": "Comments", "value": b64url("Staff were friendly and helpful")}]}

    assert deep_search_text(payload) == "Staff were friendly and helpful"


def test_extract_text_decodes_base64url_candidate():
    token = b64url("The breakfast was excellent this time")

    assert extract_text({"comment": token}, strict=True) == "The breakfast was excellent this time"
    assert extract_text({"comment": token}) == "The breakfast was excellent this time"
