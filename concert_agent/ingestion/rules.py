"""
Quality Rules Module
====================

Versioned, config-driven matching rules for the quality filter: the venue
alias table, the geographic allow-list, trailing city suffixes and the
placeholder ticket host blacklist.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from fnmatch import fnmatch
from pathlib import Path
from typing import Any

import yaml

DEFAULT_RULES_PATH = Path(__file__).parent.parent / "config" / "rules.yaml"


@dataclass
class VenueAliasTable:
    """
    Raw venue substring -> canonical venue name.

    Matching is case-insensitive substring containment. The longest matching
    alias wins; among equally long aliases the one listed first wins.
    """

    aliases: dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        ordered = [(raw.lower().strip(), canonical) for raw, canonical in self.aliases.items()]
        # sorted() is stable, so list order breaks length ties
        self._ordered = sorted(ordered, key=lambda item: len(item[0]), reverse=True)

    def resolve(self, venue: str) -> str | None:
        """Canonical name for ``venue``, or None if no alias matches."""
        lowered = venue.lower()
        for raw, canonical in self._ordered:
            if raw and raw in lowered:
                return canonical
        return None

    def __len__(self) -> int:
        return len(self._ordered)


@dataclass
class QualityRules:
    """All data the quality filter needs."""

    venue_aliases: VenueAliasTable = field(default_factory=VenueAliasTable)
    city_keywords: list[str] = field(default_factory=list)
    city_suffixes: list[str] = field(default_factory=list)
    blocked_ticket_hosts: list[str] = field(default_factory=list)
    min_ticket_url_length: int = 10
    version: int = 1

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> QualityRules:
        """Create from dictionary."""
        data = data or {}
        return cls(
            venue_aliases=VenueAliasTable(dict(data.get("venue_aliases") or {})),
            city_keywords=[str(k).lower() for k in data.get("city_keywords", [])],
            city_suffixes=[str(s).lower() for s in data.get("city_suffixes", [])],
            blocked_ticket_hosts=[str(h).lower() for h in data.get("blocked_ticket_hosts", [])],
            min_ticket_url_length=int(data.get("min_ticket_url_length", 10)),
            version=int(data.get("version", 1)),
        )

    @classmethod
    def load(cls, path: Path | str) -> QualityRules:
        """Load rules from a YAML file."""
        path = Path(path).expanduser().resolve()
        if not path.exists():
            raise FileNotFoundError(f"Rules file not found: {path}")
        with open(path, encoding="utf-8") as f:
            return cls.from_dict(yaml.safe_load(f))

    def is_blocked_host(self, host: str) -> bool:
        """True if ``host`` matches a placeholder host pattern."""
        host = host.lower().split(":", 1)[0]
        for pattern in self.blocked_ticket_hosts:
            if "*" in pattern:
                if fnmatch(host, pattern):
                    return True
            elif host == pattern or host.endswith("." + pattern):
                return True
        return False


_default_rules: QualityRules | None = None


def get_default_rules() -> QualityRules:
    """
    Get the default quality rules.

    Loads from RULES_CONFIG_PATH if set, otherwise the packaged rules.yaml.
    """
    global _default_rules

    if _default_rules is None:
        config_path = os.environ.get("RULES_CONFIG_PATH")
        _default_rules = QualityRules.load(Path(config_path) if config_path else DEFAULT_RULES_PATH)

    return _default_rules


def reset_default_rules() -> None:
    """Reset the default rules (useful for testing)."""
    global _default_rules
    _default_rules = None
