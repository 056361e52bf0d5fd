from __future__ import annotations

import json
import threading
from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError

from wealthscope.core.schemas import AssetAnalysisResult
from wealthscope.utils.logging import get_logger

logger = get_logger("history")


class HistoryStore:
    """
    Local snapshot history, persisted as one JSON file.
    - Newest first, capped at `limit`
    - Thread-safe
    - A corrupt file reads as empty history
    """

    def __init__(self, path: str | Path, limit: int = 50) -> None:
        self.path = Path(path)
        self.limit = int(limit)
        self._lock = threading.Lock()

    def _read(self) -> List[AssetAnalysisResult]:
        if not self.path.exists():
            return []
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
            if not isinstance(raw, list):
                raise ValueError("history file is not a list")
            return [AssetAnalysisResult.model_validate(r) for r in raw]
        except (ValueError, ValidationError) as e:
            logger.warning(f"history_unreadable path={self.path} err={type(e).__name__}")
            return []

    def _write(self, items: List[AssetAnalysisResult]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(
            json.dumps([r.to_wire() for r in items], ensure_ascii=False, indent=2),
            encoding="utf-8",
        )
        tmp.replace(self.path)

    def load(self) -> List[AssetAnalysisResult]:
        with self._lock:
            return self._read()

    def add(self, result: AssetAnalysisResult) -> List[AssetAnalysisResult]:
        with self._lock:
            items = [r for r in self._read() if r.id != result.id]
            items = [result, *items][: self.limit]
            self._write(items)
            return items

    def get(self, result_id: str) -> Optional[AssetAnalysisResult]:
        for r in self.load():
            if r.id == result_id:
                return r
        return None

    def clear(self) -> None:
        with self._lock:
            self.path.unlink(missing_ok=True)
