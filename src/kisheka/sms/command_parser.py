"""Command Parser — DETERMINISTIC only.

Turns a supplier's free-text SMS reply into a ParsedCommand. Understands
English and Swahili verbs, common typos, per-line bulk replies
("ACCEPT 1,3 REJECT 2"), rejection reasons and modification requests.
Never raises: anything it cannot read comes back as ``unknown``.
"""

import logging
import re
from datetime import date

from kisheka.domain.enums import CommandAction
from kisheka.domain.rejection_reasons import REJECTION_KEYWORDS

from .contracts import MaterialResponse, ModificationDetails, ParsedCommand

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Vocabulary
# ---------------------------------------------------------------------------

HELP_KEYWORDS = {"HELP", "INFO", "MSAADA", "MAELEZO"}

# verb -> (action, confidence). Canonical verbs are exact, the rest are
# synonyms or common typos and count as a partial match.
VERBS: dict[str, tuple[CommandAction, float]] = {}

_CANONICAL = {
    CommandAction.ACCEPT: ["ACCEPT", "KUBALI"],
    CommandAction.REJECT: ["REJECT", "KATA"],
    CommandAction.MODIFY: ["MODIFY", "BADILISHA"],
}
_SYNONYMS = {
    CommandAction.ACCEPT: [
        "ACEPT", "ACEPPT", "ACCEPTED", "YES", "OK", "OKAY", "CONFIRM", "CONFIRMED",
        "APPROVE", "APPROVED", "NDIYO", "SAWA",
    ],
    CommandAction.REJECT: [
        "REJCT", "REJECTED", "NO", "DECLINE", "DECLINED", "CANCEL", "CANCELLED",
        "REFUSE", "REFUSED", "KATAA", "HAPANA",
    ],
    CommandAction.MODIFY: [
        "MODFY", "CHANGE", "CHANGED", "UPDATE", "UPDATED", "EDIT", "EDITED",
        "ADJUST", "ADJUSTED",
    ],
}
for _action, _words in _CANONICAL.items():
    for _word in _words:
        VERBS[_word] = (_action, 1.0)
for _action, _words in _SYNONYMS.items():
    for _word in _words:
        VERBS[_word] = (_action, 0.5)

NEGATIONS = {"NOT", "DON'T", "DONT", "WON'T", "WONT", "CANNOT", "CANT", "CAN'T", "NEVER"}

NEGATED_CONFIDENCE = 0.8

# Bare numeric replies to an SMS that said "Reply 1 to accept, 2 to reject"
SHORT_CODES = {"1": CommandAction.ACCEPT, "2": CommandAction.REJECT}

# Verbs allowed at the start of a bulk segment
SEGMENT_VERBS: dict[str, CommandAction] = {
    "ACCEPT": CommandAction.ACCEPT,
    "ACCEPTED": CommandAction.ACCEPT,
    "KUBALI": CommandAction.ACCEPT,
    "REJECT": CommandAction.REJECT,
    "REJECTED": CommandAction.REJECT,
    "KATA": CommandAction.REJECT,
    "KATAA": CommandAction.REJECT,
    "MODIFY": CommandAction.MODIFY,
    "BADILISHA": CommandAction.MODIFY,
}

# ---------------------------------------------------------------------------
# Patterns
# ---------------------------------------------------------------------------

EMOJI_PATTERN = re.compile(
    "[\U0001F300-\U0001FAFF\U00002600-\U000027BF\U0001F000-\U0001F2FF\uFE0F\u200D]"
)
WHITESPACE_PATTERN = re.compile(r"\s+")
TOKEN_PATTERN = re.compile(r"[A-Z][A-Z']*|\d+")

# PO-20260104-003, PO 001, PO001
PO_REFERENCE_PATTERN = re.compile(r"\bPO[-\s]?(\d{8}-\d{3,}|\d+)\b")

# An index list must end the message or run into the next segment verb, so
# dates (2026-11-20, 20/11/2026) and free text ("2 weeks") are not indices.
_SEGMENT_VERB = r"(?:" + "|".join(SEGMENT_VERBS) + r")"
SEGMENT_PATTERN = re.compile(
    r"\b(" + _SEGMENT_VERB + r")\s+"
    r"(?:(ALL|ZOTE)\b|(\d+(?:\s*,\s*\d+)*)(?=\s*[.!]?\s*$|\s*[,;.]?\s*" + _SEGMENT_VERB + r"\b))"
)

_NUMBER = r"(\d{1,3}(?:,\d{3})+(?:\.\d+)?|\d+(?:\.\d+)?)"
PRICE_PATTERN = re.compile(
    r"\b(?:UNIT\s+COST|UNIT\s+PRICE|PRICE|COST|UNIT|BEI)\b\s*[:=]?\s*(?:(?:KES|KSHS?)\.?\s*)?" + _NUMBER
)
CURRENCY_PATTERN = re.compile(r"\b(?:KES|KSHS?)\.?\s*" + _NUMBER)
QUANTITY_PATTERN = re.compile(r"\b(?:QTY|QUANTITY|KIASI)\b\s*[:=]?\s*" + _NUMBER)
ISO_DATE_PATTERN = re.compile(r"\b(\d{4})-(\d{1,2})-(\d{1,2})\b")
DMY_DATE_PATTERN = re.compile(r"\b(\d{1,2})/(\d{1,2})/(\d{4})\b")

MAX_NOTES_LENGTH = 500


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def parse_command(raw_text) -> ParsedCommand:
    """Parse a supplier SMS reply. Never raises.

    Args:
        raw_text: The SMS body exactly as received.

    Returns:
        ParsedCommand; ``action`` is ``unknown`` when nothing was recognized.
    """
    if not isinstance(raw_text, str) or not raw_text.strip():
        return ParsedCommand(original_text=raw_text if isinstance(raw_text, str) else "")

    try:
        return _parse(raw_text)
    except Exception:
        logger.exception("Command parser failed on %r", raw_text[:100])
        return ParsedCommand(original_text=raw_text)


def normalize_order_reference(reference: str | None) -> str | None:
    """Canonical ``PO-<digits>`` form of any accepted reference spelling."""
    if not reference:
        return None
    match = PO_REFERENCE_PATTERN.search(reference.strip().upper())
    if not match:
        return None
    return f"PO-{match.group(1)}"


# ---------------------------------------------------------------------------
# Internals
# ---------------------------------------------------------------------------


def _clean(raw_text: str) -> str:
    without_emoji = EMOJI_PATTERN.sub("", raw_text)
    return WHITESPACE_PATTERN.sub(" ", without_emoji).strip()


def _parse(raw_text: str) -> ParsedCommand:
    cleaned = _clean(raw_text)
    text = cleaned.upper()
    tokens = [m.group(0) for m in TOKEN_PATTERN.finditer(text)]

    # 1. Help short-circuits everything else
    if "?" in text or any(token in HELP_KEYWORDS for token in tokens):
        return ParsedCommand(
            action=CommandAction.HELP,
            confidence=1.0,
            original_text=raw_text,
        )

    # 2. Order reference, then work on the text without it
    order_reference = None
    ref_match = PO_REFERENCE_PATTERN.search(text)
    if ref_match:
        order_reference = f"PO-{ref_match.group(1)}"
    body = WHITESPACE_PATTERN.sub(" ", PO_REFERENCE_PATTERN.sub(" ", text)).strip()

    base = {
        "order_reference": order_reference,
        "is_short_code": order_reference is None,
        "original_text": raw_text,
    }

    # 3. Bare numeric short code
    if body in SHORT_CODES:
        return ParsedCommand(action=SHORT_CODES[body], confidence=1.0, **base)

    # 4. Per-line bulk grammar
    material_responses = _parse_segments(body)
    if material_responses:
        return ParsedCommand(
            action=CommandAction.PARTIAL,
            confidence=1.0,
            material_responses=material_responses,
            **base,
        )

    # 5. Verb detection
    verb_match = _find_verb(body)
    if verb_match is None:
        return ParsedCommand(original_text=raw_text)
    action, confidence, verb, verb_end = verb_match

    if action == CommandAction.REJECT:
        reason, subcategory, reason_confidence = classify_rejection(body[verb_end:])
        return ParsedCommand(
            action=action,
            rejection_reason=reason,
            rejection_subcategory=subcategory,
            confidence=reason_confidence,
            **base,
        )

    if action == CommandAction.MODIFY:
        return ParsedCommand(
            action=action,
            confidence=confidence,
            modification_details=_extract_modification(cleaned, body[verb_end:], verb),
            **base,
        )

    return ParsedCommand(action=action, confidence=confidence, **base)


def _parse_segments(body: str) -> list[MaterialResponse]:
    responses = []
    for match in SEGMENT_PATTERN.finditer(body):
        action = SEGMENT_VERBS[match.group(1)]
        if match.group(2):
            responses.append(MaterialResponse(target_indices="all", action=action))
        else:
            indices = [int(part) for part in match.group(3).replace(" ", "").split(",") if part]
            responses.append(MaterialResponse(target_indices=indices, action=action))
    return responses


def _find_verb(body: str):
    """Earliest canonical verb, else earliest synonym, whole tokens only.

    "NO PROBLEM, ACCEPT" is an accept. A directly preceding negation flips
    accept and reject.

    Returns (action, confidence, verb, end_offset) or None.
    """
    found = None
    previous = None
    for match in TOKEN_PATTERN.finditer(body):
        token = match.group(0)
        if token in VERBS:
            action, confidence = VERBS[token]
            if found is None or confidence > found[1]:
                found = (action, confidence, token, match.end(), previous)
            if confidence == 1.0:
                break
        previous = token
    if found is None:
        return None

    action, confidence, token, end, before = found
    if before in NEGATIONS and action != CommandAction.MODIFY:
        action = (
            CommandAction.REJECT
            if action == CommandAction.ACCEPT
            else CommandAction.ACCEPT
        )
        confidence = NEGATED_CONFIDENCE
    return action, confidence, token, end


def classify_rejection(text: str) -> tuple[str, str | None, float]:
    """Map free text to a rejection category and subcategory.

    An exact word or phrase match scores 1.0, a word that merely starts with
    a keyword (PRICES, DELAYED) scores 0.5. No match means ``other`` /
    ``not_specified`` at 0.3.
    """
    for exact in (True, False):
        for reason_id, bucket in REJECTION_KEYWORDS.items():
            if any(_keyword_in(keyword, text, exact) for keyword in bucket["keywords"]):
                return reason_id, _match_subcategory(bucket["subcategories"], text), 1.0 if exact else 0.5
    return "other", "not_specified", 0.3


def _match_subcategory(subcategories: dict[str, list[str]], text: str) -> str | None:
    for exact in (True, False):
        for subcategory, keywords in subcategories.items():
            if any(_keyword_in(keyword, text, exact) for keyword in keywords):
                return subcategory
    return None


def _keyword_in(keyword: str, text: str, exact: bool) -> bool:
    escaped = re.escape(keyword)
    if exact:
        return re.search(rf"(?<![A-Z']){escaped}(?![A-Z'])", text) is not None
    if " " in keyword:
        return False
    return re.search(rf"(?<![A-Z']){escaped}[A-Z]+", text) is not None


def _extract_modification(cleaned: str, tail: str, verb: str) -> ModificationDetails:
    details = ModificationDetails()

    price_match = PRICE_PATTERN.search(tail) or CURRENCY_PATTERN.search(tail)
    if price_match:
        details.unit_cost = _to_number(price_match.group(1))

    qty_match = QUANTITY_PATTERN.search(tail)
    if qty_match:
        details.quantity = _to_number(qty_match.group(1))

    details.delivery_date = _extract_date(tail)

    verb_in_original = re.search(rf"\b{re.escape(verb)}\b", cleaned, re.IGNORECASE)
    if verb_in_original:
        notes = cleaned[verb_in_original.end():].strip()
        if notes:
            details.notes = notes[:MAX_NOTES_LENGTH]

    return details


def _extract_date(text: str) -> date | None:
    iso = ISO_DATE_PATTERN.search(text)
    if iso:
        year, month, day = (int(part) for part in iso.groups())
        return _safe_date(year, month, day)
    dmy = DMY_DATE_PATTERN.search(text)
    if dmy:
        day, month, year = (int(part) for part in dmy.groups())
        return _safe_date(year, month, day)
    return None


def _safe_date(year: int, month: int, day: int) -> date | None:
    try:
        return date(year, month, day)
    except ValueError:
        return None


def _to_number(value: str) -> float:
    return float(value.replace(",", ""))
