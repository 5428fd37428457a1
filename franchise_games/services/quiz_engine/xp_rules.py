"""
XP rule table: rank name -> XP value, per quiz type (local / national).

Rules are keyed by a locale-independent name ("first_place", ...). Labels and
descriptions exist per locale for admin screens only. Every edit bumps the
table version; completion works on an immutable snapshot and the ledger keeps
the numbers it resolved, so edits never rewrite history.
"""

from __future__ import annotations
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple
import logging

from .errors import RuleLookupMiss, ValidationError
from .utils import QUIZ_TYPES, get_store, utcnow

logger = logging.getLogger(__name__)

RULES_COLLECTION = "xp_rules"
META_PATH = "xp_rules_meta/current"

RANK_NAMES = ("first_place", "second_place", "third_place", "participation")

DEFAULT_RULES = [
    {"name": "first_place", "type": "local", "xpValue": 100,
     "labels": {"en_us": "1st place", "fr_fr": "1re place"}},
    {"name": "second_place", "type": "local", "xpValue": 60,
     "labels": {"en_us": "2nd place", "fr_fr": "2e place"}},
    {"name": "third_place", "type": "local", "xpValue": 40,
     "labels": {"en_us": "3rd place", "fr_fr": "3e place"}},
    {"name": "participation", "type": "local", "xpValue": 10,
     "labels": {"en_us": "Participation", "fr_fr": "Participation"}},
    {"name": "first_place", "type": "national", "xpValue": 250,
     "labels": {"en_us": "1st place", "fr_fr": "1re place"}},
    {"name": "second_place", "type": "national", "xpValue": 150,
     "labels": {"en_us": "2nd place", "fr_fr": "2e place"}},
    {"name": "third_place", "type": "national", "xpValue": 100,
     "labels": {"en_us": "3rd place", "fr_fr": "3e place"}},
    {"name": "participation", "type": "national", "xpValue": 25,
     "labels": {"en_us": "Participation", "fr_fr": "Participation"}},
]


def rule_id(name: str, quiz_type: str) -> str:
    return f"{quiz_type}__{name}"


def rank_name_for(rank: Optional[int]) -> str:
    """Final rank -> rule name used for the rank bonus."""
    if rank in (1, 2, 3):
        return RANK_NAMES[rank - 1]
    return "participation"


class XpRuleTable:
    """Immutable snapshot of the rule table at a given version."""

    def __init__(self, values: Mapping[Tuple[str, str], int], version: int = 0):
        self._values = MappingProxyType(dict(values))
        self.version = version

    def lookup(self, rank_name: str, quiz_type: str) -> int:
        try:
            return self._values[(rank_name, quiz_type)]
        except KeyError:
            raise RuleLookupMiss(
                f"no XP rule for {rank_name!r} ({quiz_type})",
                rankName=rank_name, quizType=quiz_type, version=self.version,
            ) from None

    def __len__(self):
        return len(self._values)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "rules": [
                {"name": name, "type": quiz_type, "xpValue": value}
                for (name, quiz_type), value in sorted(self._values.items())
            ],
        }

    @classmethod
    def from_rules(cls, rules: List[Dict[str, Any]], version: int = 0) -> "XpRuleTable":
        return cls({(r["name"], r["type"]): int(r["xpValue"]) for r in rules}, version)

    @classmethod
    def load(cls, store=None) -> "XpRuleTable":
        """Read rules and version in one transaction so they match."""
        store = store or get_store()

        def _read(tx):
            meta = tx.get(META_PATH) or {}
            rows = tx.list(RULES_COLLECTION)
            return int(meta.get("version", 0)), [data for _, data in rows]

        version, rules = store.transaction(_read)
        return cls.from_rules(rules, version)


# ============================================================================
# Admin operations
# ============================================================================

def list_rules(store=None) -> List[Dict[str, Any]]:
    store = store or get_store()
    return [data for _, data in store.query(RULES_COLLECTION)]


def upsert_rule(
    name: str,
    quiz_type: str,
    xp_value: int,
    labels: Optional[Dict[str, str]] = None,
    description: Optional[str] = None,
    store=None,
) -> Dict[str, Any]:
    """Create or replace one rule and bump the table version."""
    if not name or not isinstance(name, str):
        raise ValidationError("rule name is required")
    if quiz_type not in QUIZ_TYPES:
        raise ValidationError(f"type must be one of {', '.join(QUIZ_TYPES)}")
    if isinstance(xp_value, bool) or not isinstance(xp_value, int) or xp_value < 0:
        raise ValidationError("xpValue must be a non-negative integer")

    store = store or get_store()
    doc = {
        "name": name,
        "type": quiz_type,
        "xpValue": xp_value,
        "labels": dict(labels or {}),
        "description": description,
    }

    def _write(tx):
        meta = tx.get(META_PATH) or {}
        version = int(meta.get("version", 0)) + 1
        tx.set(f"{RULES_COLLECTION}/{rule_id(name, quiz_type)}", {**doc, "version": version, "updatedAt": utcnow()})
        tx.set(META_PATH, {"version": version, "updatedAt": utcnow()})
        return version

    version = store.transaction(_write)
    logger.info("XP rule %s/%s set to %s (table version %s)", quiz_type, name, xp_value, version)
    return {**doc, "version": version}


def seed_defaults(store=None) -> int:
    """Insert any default rule that is missing. Returns how many were added."""
    store = store or get_store()
    existing = {(r.get("name"), r.get("type")) for r in list_rules(store)}
    added = 0
    for rule in DEFAULT_RULES:
        if (rule["name"], rule["type"]) in existing:
            continue
        upsert_rule(rule["name"], rule["type"], rule["xpValue"], labels=rule["labels"], store=store)
        added += 1
    return added
