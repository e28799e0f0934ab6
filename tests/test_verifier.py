"""
Tests for the read-only integration verifier.
"""

import json

from mcp_supervisor.verifier import count_lines, verify_integration
from tests.helpers import write_lines


def _write_snapshot(path, stats: dict):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps({"timestamp": "12:00:00 - 01-01-2026", "stats": stats}), encoding="utf-8")


def test_count_lines():
    assert count_lines('{"a": 1}\n\nnot json\n[]\n   \n') == (2, 1)


def test_empty_source_fails_but_reports_every_line(cfg, sources):
    write_lines(sources.get("alpha").path, "{}", "{}")
    write_lines(sources.get("beta").path)
    _write_snapshot(cfg.snapshot_path, {"alpha": 2, "beta": 0, "total": 2})

    report = verify_integration(sources, cfg.snapshot_path, cfg.legacy_snapshot_path)

    assert not report.ok
    assert report.lines == [
        "✅ data/alpha.jsonl: 2 line(s)",
        "❌ data/beta.jsonl: 0 line(s)",
        "✅ output/aggregated.json: total=2 (alpha=2, beta=0)",
    ]
    assert report.render().endswith("=== Result ===\n❌ Some issues found")


def test_everything_in_place_passes(cfg, sources):
    write_lines(sources.get("alpha").path, "{}")
    write_lines(sources.get("beta").path, "{}", "[]", "7")
    _write_snapshot(cfg.snapshot_path, {"alpha": 1, "beta": 3, "total": 4})

    report = verify_integration(sources, cfg.snapshot_path, cfg.legacy_snapshot_path)

    assert report.ok
    rendered = report.render()
    assert rendered.startswith("=== MCP Integration Check ===")
    assert rendered.endswith("✅ All checks passed!")


def test_missing_files_are_reported_and_not_created(cfg, sources):
    report = verify_integration(sources, cfg.snapshot_path, cfg.legacy_snapshot_path)

    assert not report.ok
    assert "❌ data/alpha.jsonl: MISSING" in report.lines
    assert "❌ data/beta.jsonl: MISSING" in report.lines
    assert "❌ output/aggregated.json: MISSING or INVALID" in report.lines
    assert not sources.get("alpha").path.exists()
    assert not cfg.snapshot_path.exists()


def test_malformed_lines_are_counted(cfg, sources):
    write_lines(sources.get("alpha").path, "{}", "{broken")
    write_lines(sources.get("beta").path, "1")
    _write_snapshot(cfg.snapshot_path, {"alpha": 1, "beta": 1, "total": 2})

    report = verify_integration(sources, cfg.snapshot_path)

    assert report.ok
    assert "✅ data/alpha.jsonl: 1 line(s), 1 malformed" in report.lines


def test_deeply_nested_line_counts_as_malformed(cfg, sources):
    write_lines(sources.get("alpha").path, "{}", "[" * 100000)
    write_lines(sources.get("beta").path, "1")
    _write_snapshot(cfg.snapshot_path, {"alpha": 1, "beta": 1, "total": 2})

    report = verify_integration(sources, cfg.snapshot_path)

    assert report.ok
    assert "✅ data/alpha.jsonl: 1 line(s), 1 malformed" in report.lines


def test_invalid_snapshot(cfg, sources):
    write_lines(sources.get("alpha").path, "1")
    write_lines(sources.get("beta").path, "1")
    cfg.snapshot_path.parent.mkdir(parents=True, exist_ok=True)
    cfg.snapshot_path.write_text("{not json", encoding="utf-8")

    report = verify_integration(sources, cfg.snapshot_path)

    assert not report.ok
    assert report.lines[-1] == "❌ output/aggregated.json: MISSING or INVALID"


def test_inconsistent_total_fails(cfg, sources):
    write_lines(sources.get("alpha").path, "1")
    write_lines(sources.get("beta").path, "1")
    _write_snapshot(cfg.snapshot_path, {"alpha": 1, "beta": 1, "total": 5})

    report = verify_integration(sources, cfg.snapshot_path)

    assert not report.ok
    assert report.lines[-1].startswith("❌ output/aggregated.json: total=5")
    assert "does not match" in report.lines[-1]


def test_zero_total_fails(cfg, sources):
    write_lines(sources.get("alpha").path, "1")
    write_lines(sources.get("beta").path, "1")
    _write_snapshot(cfg.snapshot_path, {"alpha": 0, "beta": 0, "total": 0})

    report = verify_integration(sources, cfg.snapshot_path)

    assert not report.ok
    assert report.lines[-1].startswith("❌")


def test_legacy_snapshot_is_flagged(cfg, sources):
    write_lines(sources.get("alpha").path, "1")
    write_lines(sources.get("beta").path, "1")
    _write_snapshot(cfg.snapshot_path, {"alpha": 1, "beta": 1, "total": 2})
    _write_snapshot(cfg.legacy_snapshot_path, {"total": 2})

    report = verify_integration(sources, cfg.snapshot_path, cfg.legacy_snapshot_path)

    assert not report.ok
    assert report.lines[-1].startswith("❌ legacy aggregated.json")


def test_boolean_total_is_not_a_count(cfg, sources):
    write_lines(sources.get("alpha").path, "1")
    write_lines(sources.get("beta").path)
    _write_snapshot(cfg.snapshot_path, {"alpha": 1, "beta": 0, "total": True})

    report = verify_integration(sources, cfg.snapshot_path)

    assert report.lines[-1].startswith("❌ output/aggregated.json: total=True")


def test_integral_float_counts_are_accepted(cfg, sources):
    write_lines(sources.get("alpha").path, "1")
    write_lines(sources.get("beta").path, "1")
    _write_snapshot(cfg.snapshot_path, {"alpha": 1.0, "beta": 1, "total": 2.0})

    report = verify_integration(sources, cfg.snapshot_path)

    assert report.ok
    assert report.lines[-1] == "✅ output/aggregated.json: total=2.0 (alpha=1.0, beta=1)"
