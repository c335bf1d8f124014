"""Tolerant field extraction from arbitrarily-shaped review payloads.

Extraction is two-staged: the payload is first flattened into a single-level
map of normalized dot-joined key paths, then each logical field is resolved
against an ordered list of candidates. A candidate is either an exact key
(compared in normalized form) or a pattern scanned across every flattened key.
The first candidate in list order that yields an acceptable value wins.
"""

import base64
import binascii
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, NamedTuple, Optional, Pattern, Sequence, Tuple
from urllib.parse import urlparse

FlatKeyMap = Dict[str, Any]

_NON_ALNUM = re.compile(r"[^a-z0-9]+")

_URL_PREFIX = re.compile(r"^https?://", re.IGNORECASE)
_ISO_TIMESTAMP_PREFIX = re.compile(r"^\d{4}-\d{2}-\d{2}T")
_HEX_IDENTIFIER = re.compile(r"^[A-F0-9\-]{20,}$", re.IGNORECASE)
_MIN_TEXT_LENGTH = 15

_TEXT_KEY_HINT = re.compile(r"comment|text|review|feedback|message", re.IGNORECASE)
_ROW_LABEL_KEYS = ("name", "label", "question")
_ROW_VALUE_KEYS = ("value", "answer", "text")
_BASE64URL = re.compile(r"^[A-Za-z0-9\-_]{30,}$")
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")

_ORIGIN_HOST_RULES = (
    (re.compile(r"google", re.IGNORECASE), "GOOGLE"),
    (re.compile(r"yelp", re.IGNORECASE), "YELP"),
    (re.compile(r"facebook|fb\.com", re.IGNORECASE), "FACEBOOK"),
    (re.compile(r"chatmeter", re.IGNORECASE), "REVIEWBUILDER"),
)
PROVIDER_PLACEHOLDER = "PROVIDER"


def normalize_key(key: Any) -> str:
    """Lowercase a key and collapse non-alphanumeric runs into a single dot."""
    return _NON_ALNUM.sub(".", str(key).lower())


def is_non_empty(value: Any) -> bool:
    """A value is empty when absent, null or blank once stringified."""
    return value is not None and str(value).strip() != ""


def flatten(payload: Any, base: str = "", out: Optional[FlatKeyMap] = None) -> FlatKeyMap:
    """
    Flatten a nested payload into a normalized key path -> scalar leaf map.

    Array indices become path segments. When two source keys normalize to the
    same path, the first leaf visited keeps the slot.

    Args:
        payload: Arbitrary tree of dicts, lists and scalars
        base: Key path prefix of the current node
        out: Accumulator

    Returns:
        Flat key map
    """
    if out is None:
        out = {}

    if payload is None:
        return out

    if isinstance(payload, dict):
        for key, value in payload.items():
            segment = normalize_key(key)
            flatten(value, f"{base}.{segment}" if base else segment, out)
    elif isinstance(payload, (list, tuple)):
        for index, value in enumerate(payload):
            flatten(value, f"{base}.{index}" if base else str(index), out)
    else:
        out.setdefault(base, payload)

    return out


class FieldMatch(NamedTuple):
    """Resolved candidate: the flattened key that matched and its value."""
    key: str
    value: Any


@dataclass(frozen=True)
class Candidate:
    """Exact-key or pattern descriptor for one logical field."""

    key: Optional[str] = None
    regex: Optional[Pattern] = None

    @classmethod
    def exact(cls, key: str) -> "Candidate":
        return cls(key=normalize_key(key))

    @classmethod
    def pattern(cls, expression: str) -> "Candidate":
        return cls(regex=re.compile(expression))

    def find(self, flat: FlatKeyMap, accept: Callable[[Any], bool]) -> Optional[FieldMatch]:
        if self.regex is not None:
            for key, value in flat.items():
                if self.regex.search(key) and accept(value):
                    return FieldMatch(key, value)
            return None

        value = flat.get(self.key)
        if accept(value):
            return FieldMatch(self.key, value)
        return None


def resolve(
    flat: FlatKeyMap,
    candidates: Sequence[Candidate],
    accept: Callable[[Any], bool] = is_non_empty,
) -> Optional[FieldMatch]:
    """Return the match of the first candidate (in list order) that yields an accepted value."""
    for candidate in candidates:
        match = candidate.find(flat, accept)
        if match is not None:
            return match
    return None


def pick(
    flat: FlatKeyMap,
    candidates: Sequence[Candidate],
    accept: Callable[[Any], bool] = is_non_empty,
) -> Any:
    """Like resolve(), but returns only the value (None when absent)."""
    match = resolve(flat, candidates, accept)
    return match.value if match else None


K = Candidate.exact
P = Candidate.pattern

REVIEW_ID_CANDIDATES: Tuple[Candidate, ...] = (
    P(r"(\.|^)review(\.|_)?id(\.|$)"),
    K("review_id"),
    K("review.id"),
    K("payload.review_id"),
    K("id"),
    K("uuid"),
    K("_id"),
    P(r"provider\.?review\.?id"),
)
EXTERNAL_ID_CANDIDATES: Tuple[Candidate, ...] = (P(r"external\.?id"),)
RATING_CANDIDATES: Tuple[Candidate, ...] = (
    P(r"(\.|^)rating(\.|$)"),
    P(r"(\.|^)stars?(\.|$)"),
    K("review.rating"),
    K("payload.rating"),
    K("score"),
)
LOCATION_ID_CANDIDATES: Tuple[Candidate, ...] = (
    P(r"location(\.|_)?id(\.|$)"),
    K("review.location_id"),
    K("payload.location_id"),
)
LOCATION_NAME_CANDIDATES: Tuple[Candidate, ...] = (
    P(r"(\.|^)location$"),
    P(r"location(\.|_)?name"),
    K("review.location_name"),
    K("payload.location_name"),
    K("businessName"),
    K("business.name"),
    K("site.name"),
    K("store"),
)
PUBLIC_URL_CANDIDATES: Tuple[Candidate, ...] = (
    P(r"public.*url"),
    P(r"review\.?url"),
    P(r"(\.|^)url(\.|$)"),
    P(r"(\.|^)link(\.|$)"),
    P(r"(\.|^)permalink(\.|$)"),
    K("review.public_url"),
    K("review.url"),
    P(r"portal\.?url"),
)
DATE_CANDIDATES: Tuple[Candidate, ...] = (
    P(r"review.*date"),
    P(r"created(_|\.|)at"),
    P(r"(\.|^)date$"),
    K("timestamp"),
    K("time"),
)
AUTHOR_CANDIDATES: Tuple[Candidate, ...] = (
    P(r"author\.?name"),
    P(r"reviewer\.?(user\.?)?name"),
    P(r"(\.|^)author$"),
    P(r"(\.|^)reviewer$"),
    K("review.author"),
    K("payload.author"),
    K("user.name"),
)
PROVIDER_CANDIDATES: Tuple[Candidate, ...] = (
    P(r"(\.|^)provider(\.|$)"),
    P(r"(\.|^)source(\.|$)"),
    P(r"content\.?provider"),
    P(r"(\.|^)platform(\.|$)"),
)
# Order is significant: a "text" field beats a "comment" field on the same record.
TEXT_CANDIDATES: Tuple[Candidate, ...] = (
    P(r"review.*text"),
    P(r"(\.|^)text(\.|$)"),
    P(r"(\.|^)comment(\.|$)"),
    P(r"(\.|^)content(\.|$)"),
    P(r"(\.|^)body(\.|$)"),
    P(r"(\.|^)message(\.|$)"),
    P(r"(\.|^)snippet(\.|$)"),
    P(r"(\.|^)description(\.|$)"),
)


def decode_base64url(value: Any) -> Any:
    """
    Decode a value once if it looks like unpadded base64url, else return it as is.

    Values that fail to decode, decode to nothing, or decode to binary are
    returned unchanged.
    """
    if not isinstance(value, str):
        return value
    token = value.strip()
    if not _BASE64URL.match(token):
        return value
    try:
        decoded = base64.urlsafe_b64decode(token + "=" * (-len(token) % 4)).decode("utf-8").strip()
    except (binascii.Error, ValueError, UnicodeDecodeError):
        return value
    if not decoded or _CONTROL_CHARS.search(decoded):
        return value
    return decoded


def looks_like_human_text(value: Any) -> bool:
    """
    Heuristic check that a string is review prose rather than an id, URL or date.

    Args:
        value: Candidate value

    Returns:
        True if the value reads like human-written text
    """
    if not isinstance(value, str):
        return False

    text = value.strip()
    if len(text) < _MIN_TEXT_LENGTH:
        return False
    if _URL_PREFIX.match(text):
        return False
    if _ISO_TIMESTAMP_PREFIX.match(text):
        return False
    if _HEX_IDENTIFIER.match(text):
        return False

    has_letter = any(ch.isalpha() for ch in text)
    has_space = any(ch.isspace() for ch in text)
    return has_letter and has_space


def iter_string_leaves(node: Any, key: str = "") -> Iterator[Tuple[str, str]]:
    """
    Yield (key hint, string) for every string leaf of a payload.

    The hint is the leaf's immediate key. Array items inherit the key of the
    array. Children of survey-style rows (dicts carrying a name/label/question)
    are hinted with the row label as well, but only the answer-bearing child
    (value/answer/text). {"name": "Comments", "value": "..."} is treated like a
    comment field; {"name": "Review Plaza", "address": "..."} is not.
    """
    if isinstance(node, str):
        yield key, node
    elif isinstance(node, dict):
        label = next(
            (node[k] for k in _ROW_LABEL_KEYS if isinstance(node.get(k), str) and node[k].strip()),
            None,
        )
        for child_key, child in node.items():
            hint = f"{label} {child_key}" if label and child_key in _ROW_VALUE_KEYS else str(child_key)
            yield from iter_string_leaves(child, hint)
    elif isinstance(node, (list, tuple)):
        for child in node:
            yield from iter_string_leaves(child, key)


def deep_search_text(payload: Any) -> Optional[str]:
    """
    Find the best free-text leaf anywhere in a payload.

    Base64url-looking leaves are decoded once, then leaves failing
    looks_like_human_text() are ignored. Leaves whose key hint names a
    comment/text/review/feedback/message field are preferred; within the
    preferred group (or, if it is empty, among all leaves) the longest string
    wins, ties going to the first visited.
    """
    best_hinted: Optional[str] = None
    best_any: Optional[str] = None

    for key, value in iter_string_leaves(payload):
        value = decode_base64url(value)
        if not looks_like_human_text(value):
            continue
        text = value.strip()
        if _TEXT_KEY_HINT.search(key) and (best_hinted is None or len(text) > len(best_hinted)):
            best_hinted = text
        if best_any is None or len(text) > len(best_any):
            best_any = text

    return best_hinted or best_any


def infer_origin(provider: Any, url: Any) -> str:
    """
    Upper-cased provider display name, inferred from a URL hostname if absent.

    Args:
        provider: Explicit provider/source value (may be empty)
        url: Any URL-like value discovered in the payload

    Returns:
        Provider name, or the generic placeholder
    """
    if is_non_empty(provider):
        return str(provider).strip().upper()

    if is_non_empty(url):
        try:
            host = urlparse(str(url).strip()).hostname or ""
        except ValueError:
            host = ""
        for rule, name in _ORIGIN_HOST_RULES:
            if rule.search(host):
                return name

    return PROVIDER_PLACEHOLDER


def extract_text(payload: Any, flat: Optional[FlatKeyMap] = None, strict: bool = False) -> Optional[str]:
    """
    Resolve review text from named candidates, then fall back to a deep search.

    Args:
        payload: Raw payload
        flat: Pre-flattened payload, if already computed
        strict: Apply looks_like_human_text() to named candidates as well

    Returns:
        Review text or None
    """
    if flat is None:
        flat = flatten(payload)

    def accept(value: Any) -> bool:
        if strict:
            return looks_like_human_text(decode_base64url(value))
        return is_non_empty(value)

    text = pick(flat, TEXT_CANDIDATES, accept)
    if text is not None:
        return str(decode_base64url(text)).strip()

    return deep_search_text(payload)
