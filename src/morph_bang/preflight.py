"""Pre-flight checks for the daemon's environment."""

import os
import shutil
from dataclasses import dataclass, field
from pathlib import Path

from . import conventions
from .schema import DaemonConfig


@dataclass
class CheckResult:
    name: str
    passed: bool
    message: str
    severity: str = "error"  # error | warning | info


@dataclass
class PreflightReport:
    checks: list[CheckResult] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        return all(c.passed for c in self.checks if c.severity == "error")

    @property
    def warnings(self) -> list[CheckResult]:
        return [c for c in self.checks if not c.passed and c.severity == "warning"]


def run_preflight(config: DaemonConfig | None = None) -> PreflightReport:
    """Run all pre-flight checks and return report."""
    config = config or DaemonConfig()
    report = PreflightReport()

    # Check 1: privilege. Without root the daemon cannot re-own artifacts.
    if os.geteuid() == 0:
        report.checks.append(CheckResult("Privileges", True, "Running as root"))
    else:
        report.checks.append(
            CheckResult(
                "Privileges",
                False,
                "Not root: files owned by other users cannot be re-owned",
                severity="warning",
            )
        )

    # Check 2: watch root
    watch_root = Path(config.watch_root)
    if watch_root.is_dir():
        report.checks.append(CheckResult("Watch root", True, str(watch_root)))
    else:
        report.checks.append(
            CheckResult("Watch root", False, f"{watch_root} is not a directory")
        )

    # Check 3: tools the core cannot work without
    for tool in conventions.REQUIRED_TOOLS:
        _check_tool(report, tool, severity="error")

    # Check 4: tools for notifications and PDF output (degrade gracefully)
    for tool in conventions.OPTIONAL_TOOLS:
        _check_tool(report, tool, severity="warning")

    return report


def _check_tool(report: PreflightReport, tool: str, severity: str) -> None:
    found = shutil.which(tool)
    if found:
        report.checks.append(CheckResult(tool, True, found))
    else:
        report.checks.append(
            CheckResult(tool, False, "Not found on PATH", severity=severity)
        )
