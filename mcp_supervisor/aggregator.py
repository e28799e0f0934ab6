"""
Aggregation of provider JSONL files into one snapshot.

Every pass rebuilds the snapshot from scratch: read each source in full,
parse it line by line, count, and atomically replace the output file.
"""

import json
import logging
import os
import tempfile
from pathlib import Path

from .models import DataSource, format_timestamp
from .sources import SourceRegistry

logger = logging.getLogger(__name__)


def parse_jsonl(text: str, label: str = "<input>") -> list:
    """Parse line-delimited JSON, skipping blank lines and dropping bad ones."""
    records = []
    for lineno, line in enumerate(text.split("\n"), start=1):
        if not line.strip():
            continue
        try:
            records.append(json.loads(line))
        except json.JSONDecodeError as e:
            logger.warning(f"Error parsing line {lineno} in {label}: {e.msg}")
        except (ValueError, RecursionError) as e:
            logger.warning(f"Error parsing line {lineno} in {label}: {type(e).__name__}")
    return records


def write_json_atomic(path: Path, obj) -> None:
    """Write JSON to a temp file next to ``path`` and move it into place."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(prefix=path.name + ".", dir=str(path.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(json.dumps(obj, ensure_ascii=False, indent=2))
        os.replace(tmp, path)
    finally:
        try:
            os.unlink(tmp)
        except FileNotFoundError:
            pass


class Aggregator:
    """Merges all registered sources into ``output_path``."""

    def __init__(self, sources: SourceRegistry, output_path: Path):
        self.sources = sources
        self.output_path = Path(output_path)
        self.last_stats: dict[str, int] | None = None
        self.last_timestamp: str | None = None

    def read_source(self, source: DataSource) -> list:
        """Read one source. A missing file yields no records and is created empty."""
        try:
            content = source.path.read_text(encoding="utf-8", errors="replace")
        except FileNotFoundError:
            logger.info(f"File {source.filename} not found, creating empty file")
            source.path.parent.mkdir(parents=True, exist_ok=True)
            source.path.touch()
            return []
        except OSError as e:
            logger.error(f"Error reading {source.filename}: {e}")
            return []
        return parse_jsonl(content, source.filename)

    def build_snapshot(self) -> dict:
        """Read every source and build the snapshot without writing it."""
        snapshot = {}
        stats = {}
        for source in self.sources:
            records = self.read_source(source)
            snapshot[source.name] = records
            stats[source.name] = len(records)

        stats["total"] = sum(stats.values())
        snapshot["timestamp"] = format_timestamp()
        snapshot["stats"] = stats
        return snapshot

    def aggregate(self) -> dict:
        """Run one full pass and publish the snapshot. Returns the snapshot."""
        logger.info("Starting aggregation...")
        snapshot = self.build_snapshot()
        write_json_atomic(self.output_path, snapshot)

        self.last_stats = snapshot["stats"]
        self.last_timestamp = snapshot["timestamp"]
        logger.info(f"Stats: {json.dumps(snapshot['stats'])}")
        return snapshot

    def load_snapshot(self) -> dict | None:
        """Return the snapshot currently on disk, or None if there is none."""
        try:
            return json.loads(self.output_path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
