"""
Registry of the JSONL data sources merged by the aggregator.

Each provider (and each directly queried backing store) appends records to
its own file under the data directory. The registry only knows names and
paths; it never writes records.
"""

import logging
from pathlib import Path

from .models import DataSource

logger = logging.getLogger(__name__)

# Source names double as snapshot keys, so they must not collide with the
# snapshot's own fields or with the stats total.
RESERVED_NAMES = frozenset({"timestamp", "stats", "total"})

DEFAULT_SOURCE_FILES = [
    "knowledge-graph.jsonl",
    "memory.jsonl",
    "sequential.jsonl",
    "context7.jsonl",
    "prisma-vuexy.jsonl",
    "postgres-vuexy.jsonl",
    "postgres-flowise.jsonl",
]


class SourceRegistry:
    """Ordered, static list of data sources."""

    def __init__(self, sources: list[DataSource]):
        seen = set()
        for source in sources:
            if source.name in RESERVED_NAMES:
                raise ValueError(f"Source name '{source.name}' is reserved")
            if source.name in seen:
                raise ValueError(f"Duplicate source name '{source.name}'")
            seen.add(source.name)
        self._sources = list(sources)

    @classmethod
    def from_files(cls, data_dir: Path, filenames: list[str]) -> "SourceRegistry":
        """Build a registry where each source is named after its file stem."""
        data_dir = Path(data_dir)
        return cls([DataSource(name=Path(f).stem, path=data_dir / f) for f in filenames])

    @classmethod
    def default(cls, data_dir: Path) -> "SourceRegistry":
        return cls.from_files(data_dir, DEFAULT_SOURCE_FILES)

    def __iter__(self):
        return iter(self._sources)

    def __len__(self) -> int:
        return len(self._sources)

    def names(self) -> list[str]:
        return [s.name for s in self._sources]

    def paths(self) -> list[Path]:
        return [s.path for s in self._sources]

    def get(self, name: str) -> DataSource | None:
        for source in self._sources:
            if source.name == name:
                return source
        return None

    def ensure_files(self) -> list[Path]:
        """Create missing source files (and their directories) as empty files.

        Returns the paths that had to be created.
        """
        created = []
        for source in self._sources:
            if source.path.exists():
                continue
            source.path.parent.mkdir(parents=True, exist_ok=True)
            source.path.touch()
            created.append(source.path)
            logger.info(f"Created empty source file {source.path}")
        return created
