"""Contact confidence scoring and the clarification policy for contact lookups."""

import logging
from dataclasses import dataclass, field
from typing import Dict, Any, List, Optional

from chatcmd.models import ClarificationOption

logger = logging.getLogger(__name__)


MATCH_SCORES = {
    "exact": 0.95,
    "prefix": 0.8,
    "substring": 0.6,
    "fuzzy": 0.4,
}

RECENT_CONTACT_BOOST = 0.1
COMPLETE_PROFILE_BOOST = 0.05

FUZZY_MIN_LENGTH = 3
FUZZY_SIMILARITY_THRESHOLD = 0.6

HIGH_CONFIDENCE = 0.8
LOW_CONFIDENCE = 0.6
AMBIGUITY_MARGIN = 0.2
MAX_CLARIFICATION_OPTIONS = 5


def levenshtein_distance(a: str, b: str) -> int:
    if len(a) < len(b):
        a, b = b, a
    previous = list(range(len(b) + 1))
    for i, char_a in enumerate(a, start=1):
        current = [i]
        for j, char_b in enumerate(b, start=1):
            cost = 0 if char_a == char_b else 1
            current.append(min(current[j - 1] + 1, previous[j] + 1, previous[j - 1] + cost))
        previous = current
    return previous[-1]


def similarity(a: str, b: str) -> float:
    """(longer - distance) / longer, 1.0 for two empty strings."""
    longer = max(len(a), len(b))
    if longer == 0:
        return 1.0
    return (longer - levenshtein_distance(a, b)) / longer


def has_fuzzy_match(value: str, query: str) -> bool:
    """A word of a multi-word value is close enough to the query."""
    if " " not in value or len(query) < FUZZY_MIN_LENGTH:
        return False
    for word in value.split(" "):
        if len(word) >= FUZZY_MIN_LENGTH and similarity(word, query) > FUZZY_SIMILARITY_THRESHOLD:
            return True
    return False


def field_match_score(value: Optional[str], query: str) -> float:
    """Base score for one field value against a normalized (lowercased, stripped) query."""
    if not value:
        return 0.0
    normalized = value.lower()
    if normalized == query:
        return MATCH_SCORES["exact"]
    if normalized.startswith(query):
        return MATCH_SCORES["prefix"]
    if query in normalized:
        return MATCH_SCORES["substring"]
    if has_fuzzy_match(normalized, query):
        return MATCH_SCORES["fuzzy"]
    return 0.0


def matches_query(value: Optional[str], query: str) -> bool:
    """Whether a user is a search candidate through this field at all."""
    if not value:
        return False
    normalized = value.lower()
    if query in normalized:
        return True
    if " " in value:
        return any(word.startswith(query) or query in word for word in normalized.split(" "))
    return False


def calculate_contact_confidence(
    user: Dict[str, Any],
    query: str,
    search_fields: List[str],
    recent_contacts: List[str],
) -> float:
    """
    Confidence that a user is the one the query refers to.

    Max over the searched fields, boosted for recent contacts and complete
    profiles, capped at 1.0.
    """
    normalized_query = query.lower().strip()
    confidence = 0.0
    for field_name in search_fields:
        confidence = max(confidence, field_match_score(user.get(field_name), normalized_query))

    if user.get("id") in recent_contacts:
        confidence = min(confidence + RECENT_CONTACT_BOOST, 1.0)
    if user.get("displayName") and user.get("email"):
        confidence = min(confidence + COMPLETE_PROFILE_BOOST, 1.0)
    return round(confidence, 4)


def contact_option(contact: Dict[str, Any]) -> ClarificationOption:
    return ClarificationOption(
        id=contact["id"],
        title=contact.get("name") or "Unknown",
        subtitle=contact.get("email") or "",
        confidence=contact.get("confidence", 0.0),
        metadata={
            "is_recent": contact.get("is_recent", False),
            "last_contact": contact.get("last_contact"),
        },
    )


@dataclass
class ClarificationDecision:
    needed: bool
    reason: str
    options: List[ClarificationOption] = field(default_factory=list)


def decide_clarification(contacts: List[Dict[str, Any]]) -> ClarificationDecision:
    """
    Decide whether a sorted contact list needs the user to pick one.

    Args:
        contacts: Contacts sorted by descending confidence

    Returns:
        ClarificationDecision; options are set only when needed
    """
    if not contacts:
        return ClarificationDecision(False, "No contacts found")

    if len(contacts) == 1 and contacts[0]["confidence"] >= HIGH_CONFIDENCE:
        return ClarificationDecision(False, "Single high-confidence match")

    if len(contacts) > 1:
        margin = contacts[0]["confidence"] - contacts[1]["confidence"]
        if margin < AMBIGUITY_MARGIN:
            return ClarificationDecision(
                True,
                "Multiple contacts with similar confidence scores",
                [contact_option(c) for c in contacts[:MAX_CLARIFICATION_OPTIONS]],
            )

    if len(contacts) == 1 and contacts[0]["confidence"] < LOW_CONFIDENCE:
        return ClarificationDecision(
            True,
            "Low confidence match - user should confirm",
            [contact_option(contacts[0])],
        )

    return ClarificationDecision(False, "Clear best match found")
