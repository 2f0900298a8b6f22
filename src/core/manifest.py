"""
Tool and signature manifest parser.

The manifest is a UTF-8 text file split into sections by marker lines of the
form ``# [NAME]``. Data lines are pipe-delimited; each section kind has its own
record layout::

    # [REQUIRED_TOOLS]
    sqlite3|https://example.org/sqlite.zip|bin/sqlite3|archive|sqlite3|SQLite shell
    # [VERIFICATION]
    sqlite3|{target} -version
    # [SIGNATURES]
    PNG|0x89 0x50 0x4E 0x47|.png|0|0

Malformed lines are dropped and reported as ``ManifestIssue`` entries; parsing
never aborts on a single bad record.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

from .enums import ExtractionStrategy, ManifestSection
from .exceptions import ConfigurationError, ManifestReadError
from .logging import get_logger

LOGGER = get_logger("core.manifest")

MARKER_GLYPH = "#"
FIELD_SEPARATOR = "|"
DEFAULT_SECTION = ""

TOOL_MIN_FIELDS = 6
SIGNATURE_MIN_FIELDS = 4
SIGNATURE_MAX_FIELDS = 5
VERIFICATION_FIELDS = 2

_MARKER_RE = re.compile(r"^#\s*\[\s*(?P<name>[A-Za-z0-9_ \-]+?)\s*\]\s*$")


@dataclass(frozen=True, slots=True)
class ToolDefinition:
    """An external tool the toolchain depends on."""

    name: str
    source: str
    target_path: Path
    strategy: str
    verify_artifact: Optional[str]
    description: str
    required: bool = True
    line_no: int = 0

    @property
    def extraction_strategy(self) -> Optional[ExtractionStrategy]:
        """Closed strategy value, or None when the manifest token is unknown."""
        return ExtractionStrategy.parse(self.strategy)

    def resolve_target(self, tools_root: Optional[Path] = None) -> Path:
        """Return the install path, anchoring relative paths at ``tools_root``."""
        if tools_root is None or self.target_path.is_absolute():
            return self.target_path
        return tools_root / self.target_path


@dataclass(frozen=True, slots=True)
class VerificationCommand:
    """Probe used to check that an installed tool actually runs."""

    tool: str
    probe: str
    line_no: int = 0


@dataclass(frozen=True, slots=True)
class SignatureRecord:
    """Raw signature definition as written in the manifest."""

    name: str
    pattern: bytes
    extension: str
    min_offset: int
    max_offset: int
    line_no: int = 0


@dataclass(frozen=True, slots=True)
class ManifestIssue:
    """A manifest line that was dropped, with the reason."""

    line_no: int
    section: str
    line: str
    reason: str

    def __str__(self) -> str:
        where = self.section or "<default>"
        return f"line {self.line_no} [{where}]: {self.reason}"


ManifestRecord = Union[ToolDefinition, VerificationCommand, SignatureRecord]


@dataclass(slots=True)
class ParsedManifest:
    """Typed view over a parsed manifest."""

    sections: Dict[str, Tuple[ManifestRecord, ...]] = field(default_factory=dict)
    issues: List[ManifestIssue] = field(default_factory=list)

    def _records(self, section: ManifestSection) -> Tuple[ManifestRecord, ...]:
        return self.sections.get(section.value, ())

    @property
    def required_tools(self) -> List[ToolDefinition]:
        return list(self._records(ManifestSection.REQUIRED_TOOLS))  # type: ignore[arg-type]

    @property
    def optional_tools(self) -> List[ToolDefinition]:
        return list(self._records(ManifestSection.OPTIONAL_TOOLS))  # type: ignore[arg-type]

    @property
    def tools(self) -> List[ToolDefinition]:
        return self.required_tools + self.optional_tools

    @property
    def verifications(self) -> List[VerificationCommand]:
        return list(self._records(ManifestSection.VERIFICATION))  # type: ignore[arg-type]

    @property
    def verification_by_tool(self) -> Dict[str, VerificationCommand]:
        return {command.tool: command for command in self.verifications}

    @property
    def signatures(self) -> List[SignatureRecord]:
        return list(self._records(ManifestSection.SIGNATURES))  # type: ignore[arg-type]


def _split(line: str) -> List[str]:
    return [part.strip() for part in line.split(FIELD_SEPARATOR)]


def parse_hex_pattern(text: str) -> bytes:
    """Parse a space separated list of hex bytes (``0x89 50 4E``)."""
    tokens = text.split()
    if not tokens:
        raise ConfigurationError("empty byte pattern")
    values = bytearray()
    for token in tokens:
        digits = token[2:] if token.lower().startswith("0x") else token
        if not digits or len(digits) > 2:
            raise ConfigurationError(f"invalid hex byte '{token}'")
        try:
            values.append(int(digits, 16))
        except ValueError:
            raise ConfigurationError(f"invalid hex byte '{token}'") from None
    return bytes(values)


def _parse_offset(text: str, label: str) -> int:
    try:
        value = int(text, 16) if text.lower().startswith("0x") else int(text)
    except ValueError:
        raise ConfigurationError(f"{label} '{text}' is not an integer") from None
    if value < 0:
        raise ConfigurationError(f"{label} must not be negative")
    return value


def _parse_tool(fields: List[str], line_no: int, required: bool) -> ToolDefinition:
    if len(fields) < TOOL_MIN_FIELDS:
        raise ConfigurationError(
            f"tool record needs {TOOL_MIN_FIELDS} fields, got {len(fields)}"
        )
    name, source, target, strategy, verify_artifact = fields[:5]
    description = FIELD_SEPARATOR.join(fields[5:]).strip()
    if not name:
        raise ConfigurationError("tool name is empty")
    if not target:
        raise ConfigurationError(f"tool '{name}' has no target path")
    strategy = strategy.lower()
    if ExtractionStrategy.parse(strategy) is None:
        # Unknown strategies stay on the record; acquisition reports them per tool.
        LOGGER.warning("Tool %s uses unknown extraction strategy '%s'", name, strategy)
    return ToolDefinition(
        name=name,
        source=source,
        target_path=Path(target),
        strategy=strategy,
        verify_artifact=verify_artifact or None,
        description=description,
        required=required,
        line_no=line_no,
    )


def _parse_verification(fields: List[str], line_no: int) -> VerificationCommand:
    if len(fields) != VERIFICATION_FIELDS:
        raise ConfigurationError(
            f"verification record needs exactly {VERIFICATION_FIELDS} fields, got {len(fields)}"
        )
    tool, probe = fields
    if not tool or not probe:
        raise ConfigurationError("verification record has an empty field")
    return VerificationCommand(tool=tool, probe=probe, line_no=line_no)


def _parse_signature(fields: List[str], line_no: int) -> SignatureRecord:
    if len(fields) < SIGNATURE_MIN_FIELDS:
        raise ConfigurationError(
            f"signature record needs at least {SIGNATURE_MIN_FIELDS} fields, got {len(fields)}"
        )
    if len(fields) > SIGNATURE_MAX_FIELDS:
        LOGGER.debug("Line %d: ignoring %d trailing signature field(s)",
                     line_no, len(fields) - SIGNATURE_MAX_FIELDS)
    name, pattern_text, extension, min_text = fields[:4]
    if not name:
        raise ConfigurationError("signature name is empty")
    if not extension:
        raise ConfigurationError(f"signature '{name}' has no extension")
    pattern = parse_hex_pattern(pattern_text)
    min_offset = _parse_offset(min_text, "minimum offset")
    max_text = fields[4] if len(fields) >= SIGNATURE_MAX_FIELDS else ""
    max_offset = _parse_offset(max_text, "maximum offset") if max_text else min_offset
    if min_offset > max_offset:
        raise ConfigurationError(
            f"minimum offset {min_offset} exceeds maximum offset {max_offset}"
        )
    return SignatureRecord(
        name=name,
        pattern=pattern,
        extension=extension,
        min_offset=min_offset,
        max_offset=max_offset,
        line_no=line_no,
    )


def _parse_record(section: ManifestSection, fields: List[str], line_no: int) -> ManifestRecord:
    if section is ManifestSection.REQUIRED_TOOLS:
        return _parse_tool(fields, line_no, required=True)
    if section is ManifestSection.OPTIONAL_TOOLS:
        return _parse_tool(fields, line_no, required=False)
    if section is ManifestSection.VERIFICATION:
        return _parse_verification(fields, line_no)
    return _parse_signature(fields, line_no)


def parse_manifest(text: str) -> ParsedManifest:
    """
    Parse manifest text into typed records per section.

    Args:
        text: Full manifest contents

    Returns:
        ParsedManifest with records grouped by section and the list of
        dropped lines. Same input always yields the same result.
    """
    collected: Dict[str, List[ManifestRecord]] = {}
    issues: List[ManifestIssue] = []
    seen_tools: Dict[str, int] = {}
    seen_probes: Dict[str, int] = {}

    current_name = DEFAULT_SECTION
    current: Optional[ManifestSection] = None

    for line_no, raw in enumerate(text.lstrip("\ufeff").splitlines(), start=1):
        line = raw.strip()
        if not line:
            continue

        marker = _MARKER_RE.match(line)
        if marker:
            current_name = marker.group("name").strip().upper()
            current = ManifestSection.lookup(current_name)
            if current is None:
                LOGGER.debug("Ignoring unrecognised manifest section %s", current_name)
            else:
                current_name = current.value
                collected.setdefault(current_name, [])
            continue

        if line.startswith(MARKER_GLYPH):
            continue

        if current is None:
            if current_name != DEFAULT_SECTION:
                issues.append(ManifestIssue(line_no, current_name, line, "unrecognised section"))
            continue

        try:
            record = _parse_record(current, _split(line), line_no)
        except ConfigurationError as exc:
            issues.append(ManifestIssue(line_no, current_name, line, str(exc)))
            continue

        if isinstance(record, ToolDefinition):
            if record.name in seen_tools:
                issues.append(ManifestIssue(
                    line_no, current_name, line,
                    f"duplicate tool '{record.name}' (first defined on line {seen_tools[record.name]})",
                ))
                continue
            seen_tools[record.name] = line_no
        elif isinstance(record, VerificationCommand):
            if record.tool in seen_probes:
                issues.append(ManifestIssue(
                    line_no, current_name, line,
                    f"duplicate verification for '{record.tool}'",
                ))
                continue
            seen_probes[record.tool] = line_no

        collected[current_name].append(record)

    for issue in issues:
        LOGGER.warning("Dropped manifest %s", issue)

    return ParsedManifest(
        sections={name: tuple(records) for name, records in collected.items()},
        issues=issues,
    )


def load_manifest(path: Path) -> ParsedManifest:
    """Read and parse a manifest file. Failure to read the file is fatal."""
    try:
        text = path.read_text(encoding="utf-8-sig")
    except (OSError, UnicodeDecodeError) as exc:
        raise ManifestReadError(path, str(exc)) from exc
    parsed = parse_manifest(text)
    LOGGER.info(
        "Loaded manifest %s: %d tools, %d verifications, %d signatures, %d dropped lines",
        path,
        len(parsed.tools),
        len(parsed.verifications),
        len(parsed.signatures),
        len(parsed.issues),
    )
    return parsed
