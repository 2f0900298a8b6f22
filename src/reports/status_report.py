"""
Plain-text prerequisite/status report.

Renders the outcome of a pipeline run (tool readiness, acquisition attempts,
dropped manifest lines, carving statistics) with a Jinja2 template. The report
is meant for people; nothing downstream parses it.
"""

from __future__ import annotations

import os
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from jinja2 import Environment, FileSystemLoader, StrictUndefined

from core.app_version import get_app_version
from core.logging import get_logger

if TYPE_CHECKING:
    from core.pipeline import PipelineSummary

LOGGER = get_logger("reports.status_report")

TEMPLATES_DIR = Path(__file__).resolve().parent / "templates"
TEMPLATE_NAME = "status_report.txt.j2"


def _pad(value: Any, width: int) -> str:
    return str(value).ljust(width)


def _environment(template_dir: Optional[Path] = None) -> Environment:
    env = Environment(
        loader=FileSystemLoader(template_dir or TEMPLATES_DIR),
        autoescape=False,
        trim_blocks=True,
        lstrip_blocks=True,
        keep_trailing_newline=True,
        undefined=StrictUndefined,
    )
    env.filters["pad"] = _pad
    return env


def _tool_rows(summary: "PipelineSummary") -> List[Dict[str, str]]:
    rows = []
    for status in summary.final_statuses:
        rows.append({
            "name": status.name,
            "kind": "required" if status.required else "optional",
            "readiness": status.readiness.value,
            "detail": status.detail or "",
        })
    return rows


def render_status_report(summary: "PipelineSummary", template_dir: Optional[Path] = None) -> str:
    """Render the status report for a pipeline run."""
    rows = _tool_rows(summary)
    name_width = max([len(row["name"]) for row in rows] + [12])
    if summary.carve_result is not None:
        name_width = max([name_width] + [len(name) for name in summary.carve_result.by_signature])

    template = _environment(template_dir).get_template(TEMPLATE_NAME)
    return template.render(
        run_id=summary.run_id,
        generated=datetime.now(timezone.utc).isoformat(timespec="seconds"),
        version=get_app_version(),
        manifest_path=summary.config.manifest_path,
        tools_dir=summary.config.tools_dir,
        evidence_root=summary.config.evidence_root,
        tools=rows,
        name_width=name_width,
        readiness=summary.readiness,
        acquisitions=summary.acquisitions,
        issues=summary.manifest_issues,
        carve=summary.carve_result,
        provenance_path=summary.provenance_path,
    )


def write_status_report(summary: "PipelineSummary", dest: Path) -> Path:
    """Render and atomically write the status report."""
    text = render_status_report(summary)
    dest.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = dest.with_name(f".{dest.name}.{uuid.uuid4().hex[:8]}.tmp")
    try:
        tmp_path.write_text(text, encoding="utf-8")
        os.replace(tmp_path, dest)
    finally:
        tmp_path.unlink(missing_ok=True)
    LOGGER.info("Wrote status report %s", dest)
    return dest
