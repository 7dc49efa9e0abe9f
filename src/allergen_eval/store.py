"""
Record store: persistence of PredictionRecords grouped by model.

Failures never raise into callers; every operation returns an IOResult.
"""

import json
import logging
from abc import ABC, abstractmethod
from collections import OrderedDict
from pathlib import Path
from typing import Dict, Iterable, List

from .types import IOResult, PredictionRecord

logger = logging.getLogger(__name__)


def sanitize_model_name(model_name: str) -> str:
    """File-safe model key: '.' and '-' become '_'."""
    return model_name.replace('.', '_').replace('-', '_')


class RecordStore(ABC):

    @abstractmethod
    def save_many(self, records: Iterable[PredictionRecord]) -> IOResult[int]: ...

    @abstractmethod
    def load_grouped(self) -> IOResult[Dict[str, List[PredictionRecord]]]: ...

    def save(self, record: PredictionRecord) -> IOResult[int]:
        return self.save_many([record])

    def load_model(self, model_name: str) -> IOResult[List[PredictionRecord]]:
        result = self.load_grouped()
        if not result.success:
            return IOResult.fail(result.message)
        return IOResult.ok(list(result.value.get(model_name, [])))


class JsonlRecordStore(RecordStore):
    """
    One JSONL file per model under root: <sanitized model>.jsonl.

    Grouping on read uses each line's stored model_name, so two raw ids that
    sanitize to the same file stem still load as separate groups.
    """

    def __init__(self, root: str):
        self.root = Path(root)

    def path_for(self, model_name: str) -> Path:
        return self.root / f"{sanitize_model_name(model_name)}.jsonl"

    def save_many(self, records: Iterable[PredictionRecord]) -> IOResult[int]:
        by_path: Dict[Path, List[PredictionRecord]] = OrderedDict()
        for r in records:
            by_path.setdefault(self.path_for(r.model_name), []).append(r)

        saved = 0
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            for path, group in by_path.items():
                with open(path, 'a', encoding='utf-8') as f:
                    for r in group:
                        f.write(json.dumps(r.to_dict(), ensure_ascii=False) + '\n')
                        saved += 1
        except OSError as e:
            logger.error("Record store write failed under %s: %s", self.root, e)
            return IOResult.fail(f"write failed after {saved} records: {e}")
        return IOResult.ok(saved)

    def load_grouped(self) -> IOResult[Dict[str, List[PredictionRecord]]]:
        grouped: Dict[str, List[PredictionRecord]] = OrderedDict()
        if not self.root.exists():
            return IOResult.ok(grouped, message="store is empty")

        skipped = 0
        try:
            for path in sorted(self.root.glob('*.jsonl')):
                with open(path, 'r', encoding='utf-8') as f:
                    for line_no, line in enumerate(f, 1):
                        line = line.strip()
                        if not line:
                            continue
                        try:
                            record = PredictionRecord.from_dict(json.loads(line))
                        except (json.JSONDecodeError, TypeError, ValueError) as e:
                            logger.debug("Skipping %s:%d: %s", path.name, line_no, e)
                            skipped += 1
                            continue
                        grouped.setdefault(record.model_name, []).append(record)
        except OSError as e:
            logger.error("Record store read failed under %s: %s", self.root, e)
            return IOResult.fail(f"read failed: {e}")

        message = f"{skipped} malformed lines skipped" if skipped else ""
        return IOResult.ok(grouped, message=message)

    def load_model(self, model_name: str) -> IOResult[List[PredictionRecord]]:
        path = self.path_for(model_name)
        if not path.exists():
            return IOResult.ok([])
        result = self.load_grouped()
        if not result.success:
            return IOResult.fail(result.message)
        return IOResult.ok(list(result.value.get(model_name, [])))

    def delete_all(self) -> IOResult[int]:
        """Remove every model file; value is the number of files removed."""
        if not self.root.exists():
            return IOResult.ok(0)
        removed = 0
        try:
            for path in self.root.glob('*.jsonl'):
                path.unlink()
                removed += 1
        except OSError as e:
            logger.error("Record store delete failed under %s: %s", self.root, e)
            return IOResult.fail(f"delete failed after {removed} files: {e}")
        return IOResult.ok(removed)
