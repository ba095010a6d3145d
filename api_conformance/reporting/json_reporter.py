"""JSON output for conformance runs: the saved report and the CLI object."""

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from .run_report import RunReport


class JsonReporter:
    """Turns a RunReport into the saved report and the CLI result object."""

    def generate(self, suite_name: str, run_report: RunReport) -> dict[str, Any]:
        """Build the report dictionary of one run, stamped with the current UTC time."""
        return {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "suite": suite_name,
            **run_report.to_dict(),
        }

    def save(self, report: dict[str, Any], path: Path) -> Path:
        """Write ``report`` as indented JSON, creating parent directories."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(report, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")
        return path

    def generate_cli_output(
        self,
        report: dict[str, Any],
        report_path: Optional[str] = None,
    ) -> dict[str, Any]:
        """Generate the compact JSON object printed by the CLI.

        {
            "success": bool,
            "command": "run",
            "data": { ... },
            "message": str
        }
        """
        summary = report["summary"]
        all_passed = report["status"] == "passed"

        data: dict[str, Any] = {
            "suite": report["suite"],
            "engines": report["engines"],
            "total": summary["total"],
            "passed": summary["passed"],
            "failed": summary["failed"],
            "skipped": summary["skipped"],
            "duration_ms": summary["duration_ms"],
            "failures": [o for o in report["outcomes"] if o["status"] == "failed"],
        }
        if report_path:
            data["report_path"] = report_path

        if all_passed:
            message = "All steps passed"
        else:
            message = f"{summary['failed']} of {summary['total']} step executions failed"

        return {
            "success": all_passed,
            "command": "run",
            "data": data,
            "message": message,
        }
