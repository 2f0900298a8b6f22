"""
Core Enumerations

Centralized enum definitions for consistent typing across the codebase.
Using StrEnum (Python 3.11+) for string-based enums that serialize naturally.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Optional


class ExtractionStrategy(StrEnum):
    """How a missing tool is obtained."""

    DIRECT = "direct"          # Fetch source verbatim to the target path
    ARCHIVE = "archive"        # Fetch archive, expand, pick payload
    INSTALLER = "installer"    # Fetch installer binary to the target path
    MANUAL = "manual"          # Operator has to provide the tool

    @classmethod
    def parse(cls, token: Optional[str]) -> Optional["ExtractionStrategy"]:
        """Map a manifest token (or one of its aliases) to a strategy."""
        if not token:
            return None
        return _STRATEGY_ALIASES.get(token.strip().lower())

    @classmethod
    def known_tokens(cls) -> tuple[str, ...]:
        return tuple(sorted(_STRATEGY_ALIASES))


_STRATEGY_ALIASES = {
    "direct": ExtractionStrategy.DIRECT,
    "direct-fetch": ExtractionStrategy.DIRECT,
    "download": ExtractionStrategy.DIRECT,
    "archive": ExtractionStrategy.ARCHIVE,
    "archive-fetch": ExtractionStrategy.ARCHIVE,
    "zip": ExtractionStrategy.ARCHIVE,
    "installer": ExtractionStrategy.INSTALLER,
    "installer-fetch": ExtractionStrategy.INSTALLER,
    "exe": ExtractionStrategy.INSTALLER,
    "manual": ExtractionStrategy.MANUAL,
    "manual-only": ExtractionStrategy.MANUAL,
}


class Readiness(StrEnum):
    """Tri-state readiness of an external tool."""

    READY = "READY"
    PRESENT_NOT_FUNCTIONAL = "PRESENT_NOT_FUNCTIONAL"
    MISSING = "MISSING"

    @classmethod
    def derive(cls, present: bool, functional: bool) -> "Readiness":
        if present and functional:
            return cls.READY
        if present:
            return cls.PRESENT_NOT_FUNCTIONAL
        return cls.MISSING


class NextAction(StrEnum):
    """What the pipeline should do after a readiness check."""

    PROCEED = "proceed"
    ACQUIRE = "acquire"
    WARN = "warn"


class ManifestSection(StrEnum):
    """Recognised manifest sections."""

    REQUIRED_TOOLS = "REQUIRED_TOOLS"
    OPTIONAL_TOOLS = "OPTIONAL_TOOLS"
    VERIFICATION = "VERIFICATION"
    SIGNATURES = "SIGNATURES"

    @classmethod
    def lookup(cls, name: str) -> Optional["ManifestSection"]:
        key = name.strip().upper().replace(" ", "_").replace("-", "_")
        if key == "TOOLS":
            return cls.REQUIRED_TOOLS
        try:
            return cls(key)
        except ValueError:
            return None
