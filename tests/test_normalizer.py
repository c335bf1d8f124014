"""Tests for review normalization."""

from datetime import datetime, timezone

import pytest

from app.locations import LocationDirectory
from app.models import NO_TEXT, NO_URL, NOT_AVAILABLE, ProviderCategory
from app.normalizers.review_normalizer import (
    MissingReviewIdError,
    ReviewNormalizer,
    categorize_provider,
    coerce_rating,
    normalize_provider_name,
)


@pytest.fixture
def normalizer(locations):
    return ReviewNormalizer(locations=locations)


def test_normalize_chatmeter_review(normalizer, mock_chatmeter_review):
    """Test normalization of a Chatmeter v5 review."""
    review = normalizer.normalize(mock_chatmeter_review)

    assert review.id == "abc123"
    assert review.provider == "GOOGLE"
    assert review.category == ProviderCategory.GOOGLE
    assert review.rating == 5
    assert review.location_id == "L-1"
    assert review.location_name == "Downtown"
    assert review.author == "Jane D."
    assert review.created_at == "2025-11-01T12:00:00Z"
    assert review.text == "Great service and friendly staff, will come back!"
    assert review.public_url == "https://maps.google.com/review/abc123"


def test_normalize_is_deterministic(normalizer, mock_chatmeter_review):
    assert normalizer.normalize(mock_chatmeter_review) == normalizer.normalize(mock_chatmeter_review)


def test_missing_review_id_raises(normalizer):
    with pytest.raises(MissingReviewIdError):
        normalizer.normalize({"rating": 5, "text": "Nice place to visit"})


def test_review_id_recovered_from_external_id(normalizer):
    review = normalizer.normalize({"externalId": "chatmeter:xyz789", "text": "ok"})

    assert review.id == "xyz789"


def test_foreign_external_id_is_not_a_review_id(normalizer):
    with pytest.raises(MissingReviewIdError):
        normalizer.normalize({"externalId": "other:xyz789"})


def test_defaults_for_sparse_payload():
    review = ReviewNormalizer().normalize({"review_id": "r1"})

    assert review.provider == "PROVIDER"
    assert review.category == ProviderCategory.OTHER
    assert review.rating is None
    assert review.location_name == "Location"
    assert review.author == "Reviewer"
    assert review.created_at == NOT_AVAILABLE
    assert review.text == NO_TEXT
    assert review.public_url == NO_URL


def test_created_at_uses_injected_clock():
    now = datetime(2025, 11, 2, 8, 30, tzinfo=timezone.utc)

    review = ReviewNormalizer().normalize({"review_id": "r1"}, now=now)

    assert review.created_at == now.isoformat()


def test_location_name_falls_back_to_location_id():
    review = ReviewNormalizer().normalize({"review_id": "r1", "location_id": "L-9"})

    assert review.location_name == "Location L-9"


def test_payload_location_name_used_when_not_in_directory(normalizer):
    review = normalizer.normalize({"review_id": "r1", "location_id": "L-9", "locationName": "Airport"})

    assert review.location_name == "Airport"


def test_provider_inferred_from_url(normalizer):
    review = normalizer.normalize({"review_id": "r1", "link": "https://www.yelp.com/biz/acme?hrid=1"})

    assert review.provider == "YELP"
    assert review.category == ProviderCategory.YELP


def test_public_url_falls_back_to_location_profile(normalizer):
    yelp = normalizer.normalize({"review_id": "r1", "provider": "yelp", "location_id": "L-1"})
    trustpilot = normalizer.normalize({"review_id": "r2", "provider": "Trust Pilot", "location_id": "L-1"})

    assert yelp.public_url == "https://www.yelp.com/biz/acme-downtown"
    assert trustpilot.provider == "TRUSTPILOT"
    assert trustpilot.public_url == "https://www.trustpilot.com/review/acme.test"


def test_strict_text_ignores_short_named_text(normalizer):
    payload = {"review_id": "r1", "text": "ok", "survey": {"feedback": "Friendly staff and quick checkout"}}

    assert normalizer.normalize(payload).text == "ok"
    assert normalizer.normalize(payload, strict_text=True).text == "Friendly staff and quick checkout"


@pytest.mark.parametrize(
    "name,expected",
    [
        ("GOOGLE MAPS", "GOOGLE"),
        ("gmaps", "GOOGLE"),
        ("META", "FACEBOOK"),
        ("FB", "FACEBOOK"),
        ("Trust Pilot", "TRUSTPILOT"),
        ("MICROSOFT BING PLACES", "BING"),
        ("yelp", "YELP"),
    ],
)
def test_normalize_provider_name(name, expected):
    assert normalize_provider_name(name) == expected


@pytest.mark.parametrize(
    "name,expected",
    [
        ("GOOGLE", ProviderCategory.GOOGLE),
        ("Yelp", ProviderCategory.YELP),
        ("Expedia.com", ProviderCategory.EXPEDIA),
        ("TRIPADVISOR", ProviderCategory.TRIPADVISOR),
        ("Trip Advisor", ProviderCategory.TRIPADVISOR),
        ("FACEBOOK", ProviderCategory.OTHER),
        (None, ProviderCategory.OTHER),
    ],
)
def test_categorize_provider(name, expected):
    assert categorize_provider(name) == expected


@pytest.mark.parametrize(
    "value,expected",
    [(5, 5), ("4", 4), ("4.5", 4.5), (3.0, 3), ("five", None), ("", None), (True, None), ("nan", None)],
)
def test_coerce_rating(value, expected):
    assert coerce_rating(value) == expected


def test_location_directory_from_settings_bad_json(test_settings):
    settings = test_settings.model_copy(update={"location_map_json": "{not json"})

    assert len(LocationDirectory.from_settings(settings)) == 0


def test_location_directory_from_settings_file(test_settings, tmp_path):
    path = tmp_path / "locations.json"
    path.write_text('{"L-5": {"name": "Harbor", "google_url": "https://g.page/harbor"}}', encoding="utf-8")
    settings = test_settings.model_copy(update={"location_map_path": str(path)})

    directory = LocationDirectory.from_settings(settings)

    assert directory.name_for("L-5") == "Harbor"
    assert directory.profile_url("L-5", "GOOGLE") == "https://g.page/harbor"
    assert directory.profile_url("L-5", "YELP") is None
