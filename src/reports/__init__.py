"""Reports module - human-readable run reports.

This module provides:
- Plain-text status report rendering (status_report.py)
- Jinja2 templates in reports/templates/
"""

from .status_report import render_status_report, write_status_report

__all__ = [
    "render_status_report",
    "write_status_report",
]
