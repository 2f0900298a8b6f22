"""
Tool Registry and Readiness Resolution

Derives the readiness of every manifest tool from the filesystem and an
optional verification probe. Nothing is cached: each call looks at the disk
again, so a check after acquisition sees the new state.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional

from .commands import CommandResult, CommandRunner, run_command, split_command
from .enums import NextAction, Readiness
from .logging import get_logger
from .manifest import ToolDefinition, VerificationCommand

LOGGER = get_logger("core.tool_registry")

TARGET_PLACEHOLDER = "{target}"


@dataclass(frozen=True, slots=True)
class ToolStatus:
    """Readiness of a single tool at the time of the check."""

    name: str
    present: bool
    functional: bool
    required: bool = True
    target_path: Optional[Path] = None
    detail: Optional[str] = None

    @property
    def readiness(self) -> Readiness:
        return Readiness.derive(self.present, self.functional)

    @property
    def ready(self) -> bool:
        return self.readiness is Readiness.READY


@dataclass(frozen=True, slots=True)
class ReadinessSummary:
    """Counts of ready/not-ready tools split by required and optional."""

    required_ready: int
    required_not_ready: int
    optional_ready: int
    optional_not_ready: int
    not_ready: List[str] = field(default_factory=list)

    @property
    def all_required_ready(self) -> bool:
        return self.required_not_ready == 0

    def next_action(self, auto_acquire: bool) -> NextAction:
        """Decide whether to proceed, attempt acquisition, or only warn."""
        if self.all_required_ready:
            return NextAction.PROCEED
        if auto_acquire:
            return NextAction.ACQUIRE
        return NextAction.WARN


def build_probe(command: VerificationCommand, target: Path) -> List[str]:
    """Expand ``{target}`` in the probe string and split it into argv."""
    args = split_command(command.probe)
    return [arg.replace(TARGET_PLACEHOLDER, str(target)) for arg in args]


def probe_succeeded(result: CommandResult, strict: bool = False) -> bool:
    """
    Interpret a probe result.

    A result that carries neither an exit status nor an error means the probe
    could not report anything. That counts as success unless ``strict``.
    """
    if result.ok:
        return True
    if result.returncode is None and result.error is None:
        return not strict
    return False


def resolve_tool(
    definition: ToolDefinition,
    verification: Optional[VerificationCommand],
    *,
    tools_root: Optional[Path] = None,
    runner: Optional[CommandRunner] = None,
    probe_timeout: float = 15.0,
    strict_probe_status: bool = False,
) -> ToolStatus:
    """Compute the status of one tool."""
    target = definition.resolve_target(tools_root)
    present = target.exists()

    if not present:
        return ToolStatus(
            name=definition.name,
            present=False,
            functional=False,
            required=definition.required,
            target_path=target,
            detail="Not found at target path",
        )

    if verification is None:
        return ToolStatus(
            name=definition.name,
            present=True,
            functional=True,
            required=definition.required,
            target_path=target,
        )

    run = runner or run_command
    try:
        args = build_probe(verification, target)
    except ValueError as exc:
        # shlex rejects unbalanced quotes
        return ToolStatus(
            name=definition.name,
            present=True,
            functional=False,
            required=definition.required,
            target_path=target,
            detail=f"Invalid verification command: {exc}",
        )

    result = run(args, probe_timeout)
    functional = probe_succeeded(result, strict=strict_probe_status)
    detail = None
    if not functional:
        detail = f"Verification failed: {result.error or 'no exit status'}"
        LOGGER.warning("Tool %s is present but not functional: %s", definition.name, detail)

    return ToolStatus(
        name=definition.name,
        present=True,
        functional=functional,
        required=definition.required,
        target_path=target,
        detail=detail,
    )


def resolve(
    definitions: Iterable[ToolDefinition],
    verification_by_tool: Mapping[str, VerificationCommand],
    *,
    tools_root: Optional[Path] = None,
    runner: Optional[CommandRunner] = None,
    probe_timeout: float = 15.0,
    strict_probe_status: bool = False,
) -> List[ToolStatus]:
    """
    Compute the readiness of every tool, in definition order.

    Args:
        definitions: Tool definitions from the manifest
        verification_by_tool: Optional probe per tool name
        tools_root: Anchor for relative target paths
        runner: Command runner used for probes (default: run_command)
        probe_timeout: Seconds allowed per probe
        strict_probe_status: Treat a probe without exit status as failed

    Returns:
        List of ToolStatus
    """
    statuses = [
        resolve_tool(
            definition,
            verification_by_tool.get(definition.name),
            tools_root=tools_root,
            runner=runner,
            probe_timeout=probe_timeout,
            strict_probe_status=strict_probe_status,
        )
        for definition in definitions
    ]
    summary = summarize(statuses)
    LOGGER.info(
        "Tool check complete: %d/%d required ready, %d/%d optional ready",
        summary.required_ready,
        summary.required_ready + summary.required_not_ready,
        summary.optional_ready,
        summary.optional_ready + summary.optional_not_ready,
    )
    return statuses


def summarize(statuses: Iterable[ToolStatus]) -> ReadinessSummary:
    """Aggregate statuses into required/optional ready counts."""
    counts = {"required_ready": 0, "required_not_ready": 0, "optional_ready": 0, "optional_not_ready": 0}
    not_ready: List[str] = []
    for status in statuses:
        prefix = "required" if status.required else "optional"
        if status.ready:
            counts[f"{prefix}_ready"] += 1
        else:
            counts[f"{prefix}_not_ready"] += 1
            not_ready.append(status.name)
    return ReadinessSummary(not_ready=not_ready, **counts)


class ToolRegistry:
    """
    Central registry of the manifest's tools.

    Holds the definitions and probes and re-derives readiness on demand.
    """

    def __init__(
        self,
        definitions: Iterable[ToolDefinition],
        verification_by_tool: Optional[Mapping[str, VerificationCommand]] = None,
        *,
        tools_root: Optional[Path] = None,
        runner: Optional[CommandRunner] = None,
        probe_timeout: float = 15.0,
        strict_probe_status: bool = False,
    ):
        self._definitions: Dict[str, ToolDefinition] = {d.name: d for d in definitions}
        self._verifications: Dict[str, VerificationCommand] = dict(verification_by_tool or {})
        self.tools_root = tools_root
        self.runner = runner
        self.probe_timeout = probe_timeout
        self.strict_probe_status = strict_probe_status

        for tool in self._verifications:
            if tool not in self._definitions:
                LOGGER.warning("Verification command for unknown tool %s is ignored", tool)

    @property
    def definitions(self) -> List[ToolDefinition]:
        return list(self._definitions.values())

    def get_definition(self, name: str) -> Optional[ToolDefinition]:
        return self._definitions.get(name)

    def check_tool(self, name: str) -> ToolStatus:
        """Re-check a single tool. Raises KeyError for unknown names."""
        definition = self._definitions[name]
        return resolve_tool(
            definition,
            self._verifications.get(name),
            tools_root=self.tools_root,
            runner=self.runner,
            probe_timeout=self.probe_timeout,
            strict_probe_status=self.strict_probe_status,
        )

    def check_all(self) -> List[ToolStatus]:
        """Re-check every tool."""
        return resolve(
            self._definitions.values(),
            self._verifications,
            tools_root=self.tools_root,
            runner=self.runner,
            probe_timeout=self.probe_timeout,
            strict_probe_status=self.strict_probe_status,
        )

    def get_missing_tools(self, statuses: Optional[List[ToolStatus]] = None) -> List[ToolDefinition]:
        """Definitions of required tools that are not READY."""
        statuses = statuses if statuses is not None else self.check_all()
        return [
            self._definitions[status.name]
            for status in statuses
            if status.required and not status.ready
        ]
