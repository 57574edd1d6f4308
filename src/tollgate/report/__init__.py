"""
Reporting module for Tollgate.

Renders decisions, debug traces and policy configurations for a terminal.

Example:
    from tollgate.report import print_trace

    print_trace(policy.debug("drive_vehicle"), ability="drive_vehicle")
"""

from tollgate.report.console import (
    format_trace,
    print_decisions,
    print_policy_summary,
    print_trace,
)

__all__ = [
    "format_trace",
    "print_decisions",
    "print_policy_summary",
    "print_trace",
]
