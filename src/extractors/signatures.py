"""
Signature Registry

Byte-signature rules and matching for the cache carver. A rule matches a
buffer when its pattern starts at some offset inside the rule's inclusive
``[min_offset, max_offset]`` window. Rules are evaluated in registry order and
the first hit wins; there is no scoring between rules.

Built-in rules (used when a manifest defines none):
- JPEG (FFD8FF)
- PNG
- GIF (87a, 89a)
- BMP
- ICO
- TIFF (little-endian and big-endian)
- WebP (RIFF container, WEBP tag at offset 8)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Iterator, List, Optional, Sequence

from core.exceptions import ConfigurationError
from core.logging import get_logger
from core.manifest import SignatureRecord

LOGGER = get_logger("extractors.signatures")


@dataclass(frozen=True, slots=True)
class SignatureRule:
    """A byte pattern expected within an offset window from the buffer start."""

    name: str
    pattern: bytes
    extension: str
    min_offset: int = 0
    max_offset: int = 0

    def __post_init__(self) -> None:
        if not self.pattern:
            raise ValueError(f"Signature {self.name!r} has an empty pattern")
        if self.min_offset < 0:
            raise ValueError(f"Signature {self.name!r} has a negative minimum offset")
        if self.min_offset > self.max_offset:
            raise ValueError(
                f"Signature {self.name!r}: minimum offset {self.min_offset} "
                f"exceeds maximum offset {self.max_offset}"
            )
        ext = self.extension.strip()
        if not ext:
            raise ValueError(f"Signature {self.name!r} has no extension")
        if not ext.startswith("."):
            ext = f".{ext}"
        object.__setattr__(self, "extension", ext.lower())

    @classmethod
    def from_record(cls, record: SignatureRecord) -> "SignatureRule":
        return cls(
            name=record.name,
            pattern=record.pattern,
            extension=record.extension,
            min_offset=record.min_offset,
            max_offset=record.max_offset,
        )

    @property
    def min_length(self) -> int:
        """Smallest buffer that can possibly match."""
        return self.min_offset + len(self.pattern)


@dataclass(frozen=True, slots=True)
class MatchResult:
    """Which rule matched, and where."""

    rule: SignatureRule
    offset: int

    @property
    def name(self) -> str:
        return self.rule.name

    @property
    def extension(self) -> str:
        return self.rule.extension


def match(data: bytes, rule: SignatureRule) -> Optional[MatchResult]:
    """
    Return the lowest-offset match of ``rule`` in ``data``.

    Offsets are tried from ``min_offset`` to ``max_offset`` inclusive, clipped
    so the pattern fits inside the buffer. A buffer shorter than
    ``min_offset + len(pattern)`` never matches.
    """
    if len(data) < rule.min_length:
        return None
    last = min(rule.max_offset, len(data) - len(rule.pattern))
    pattern = rule.pattern
    first_byte = pattern[0]
    view = memoryview(data)
    for offset in range(rule.min_offset, last + 1):
        if data[offset] != first_byte:
            continue
        if view[offset:offset + len(pattern)] == pattern:
            return MatchResult(rule=rule, offset=offset)
    return None


def classify(data: bytes, rules: Iterable[SignatureRule]) -> Optional[MatchResult]:
    """Return the first rule (in order) that matches ``data``."""
    for rule in rules:
        result = match(data, rule)
        if result is not None:
            return result
    return None


# (name, pattern, extension, min offset, max offset), in priority order
DEFAULT_SIGNATURES = (
    ("JPEG", b"\xff\xd8\xff", ".jpg", 0, 0),
    ("PNG", b"\x89PNG\r\n\x1a\n", ".png", 0, 0),
    ("GIF87a", b"GIF87a", ".gif", 0, 0),
    ("GIF89a", b"GIF89a", ".gif", 0, 0),
    ("WEBP", b"WEBP", ".webp", 8, 8),
    ("TIFF_LE", b"II*\x00", ".tif", 0, 0),
    ("TIFF_BE", b"MM\x00*", ".tif", 0, 0),
    ("ICO", b"\x00\x00\x01\x00", ".ico", 0, 0),
    ("BMP", b"BM", ".bmp", 0, 0),
)


class SignatureRegistry:
    """Ordered, validated collection of signature rules."""

    def __init__(self, rules: Iterable[SignatureRule] = ()):
        ordered: List[SignatureRule] = []
        seen = set()
        for rule in rules:
            if rule.name in seen:
                raise ConfigurationError(f"Duplicate signature name: {rule.name}")
            seen.add(rule.name)
            ordered.append(rule)
        self._rules = tuple(ordered)

    @classmethod
    def from_records(cls, records: Sequence[SignatureRecord]) -> "SignatureRegistry":
        """Build a registry from parsed manifest records, skipping invalid ones."""
        rules: List[SignatureRule] = []
        seen = set()
        for record in records:
            if record.name in seen:
                LOGGER.warning("Skipping duplicate signature %s (line %d)", record.name, record.line_no)
                continue
            try:
                rules.append(SignatureRule.from_record(record))
            except ValueError as exc:
                LOGGER.warning("Skipping invalid signature on line %d: %s", record.line_no, exc)
                continue
            seen.add(record.name)
        return cls(rules)

    @classmethod
    def default(cls) -> "SignatureRegistry":
        return cls(
            SignatureRule(name, pattern, ext, lo, hi)
            for name, pattern, ext, lo, hi in DEFAULT_SIGNATURES
        )

    @property
    def rules(self) -> tuple[SignatureRule, ...]:
        return self._rules

    def __iter__(self) -> Iterator[SignatureRule]:
        return iter(self._rules)

    def __len__(self) -> int:
        return len(self._rules)

    def __bool__(self) -> bool:
        return bool(self._rules)

    def get(self, name: str) -> Optional[SignatureRule]:
        for rule in self._rules:
            if rule.name == name:
                return rule
        return None

    def classify(self, data: bytes) -> Optional[MatchResult]:
        return classify(data, self._rules)
