"""Authorization helpers for triage decisions."""

from src.security.authorization import (
    TrustClass,
    TrustSnapshot,
    classify_author,
    is_special_actor,
    parse_chat_id,
    special_project_for,
)

__all__ = [
    "TrustClass",
    "TrustSnapshot",
    "classify_author",
    "is_special_actor",
    "parse_chat_id",
    "special_project_for",
]
