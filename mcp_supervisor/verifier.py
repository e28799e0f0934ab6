"""
Read-only integration check of the data sources and the snapshot.

Independent of a running supervisor: it only looks at files on disk, never
creates or modifies anything, and reports every check instead of stopping
at the first failure.
"""

import json
from dataclasses import dataclass, field
from pathlib import Path

from .sources import SourceRegistry

OK = "✅"
FAIL = "❌"


@dataclass
class VerificationReport:
    ok: bool = True
    lines: list[str] = field(default_factory=list)

    def passed(self, message: str):
        self.lines.append(f"{OK} {message}")

    def failed(self, message: str):
        self.ok = False
        self.lines.append(f"{FAIL} {message}")

    def render(self) -> str:
        summary = f"{OK} All checks passed!" if self.ok else f"{FAIL} Some issues found"
        return "\n".join(["=== MCP Integration Check ===", "", *self.lines, "", "=== Result ===", summary])


def count_lines(text: str) -> tuple[int, int]:
    """Return (well-formed, malformed) counts of non-blank JSONL lines."""
    good = bad = 0
    for line in text.split("\n"):
        if not line.strip():
            continue
        try:
            json.loads(line)
            good += 1
        except (ValueError, RecursionError):
            bad += 1
    return good, bad


def _check_sources(sources: SourceRegistry, report: VerificationReport):
    for source in sources:
        label = f"data/{source.filename}"
        try:
            content = source.path.read_text(encoding="utf-8", errors="replace")
        except OSError:
            report.failed(f"{label}: MISSING")
            continue

        good, bad = count_lines(content)
        message = f"{label}: {good} line(s)"
        if bad:
            message += f", {bad} malformed"
        if good == 0:
            report.failed(message)
        else:
            report.passed(message)


def _is_count(value) -> bool:
    """A JSON number with an integral value (booleans excluded)."""
    if isinstance(value, bool):
        return False
    if isinstance(value, float):
        return value.is_integer()
    return isinstance(value, int)


def _check_snapshot(snapshot_path: Path, report: VerificationReport):
    label = f"output/{snapshot_path.name}"
    try:
        data = json.loads(snapshot_path.read_text(encoding="utf-8"))
    except (OSError, ValueError, RecursionError):
        report.failed(f"{label}: MISSING or INVALID")
        return

    stats = data.get("stats") if isinstance(data, dict) else None
    if not isinstance(stats, dict):
        report.failed(f"{label}: MISSING or INVALID (no stats)")
        return

    total = stats.get("total")
    per_source = {k: v for k, v in stats.items() if k != "total"}
    summary = ", ".join(f"{k}={v}" for k, v in per_source.items())
    message = f"{label}: total={total if total is not None else 'n/a'} ({summary})"

    if not _is_count(total) or total < 1:
        report.failed(message)
    elif all(_is_count(v) for v in per_source.values()) and sum(per_source.values()) != total:
        report.failed(f"{message}; total does not match the per-source counts")
    else:
        report.passed(message)


def verify_integration(
    sources: SourceRegistry,
    snapshot_path: Path,
    legacy_snapshot_path: Path = None,
) -> VerificationReport:
    """Check sources, snapshot and the legacy snapshot location."""
    report = VerificationReport()
    _check_sources(sources, report)
    _check_snapshot(Path(snapshot_path), report)

    if legacy_snapshot_path is not None and Path(legacy_snapshot_path).exists():
        report.failed(f"legacy {Path(legacy_snapshot_path).name} found at base path (should be in output/)")

    return report
