"""Best-effort persistence of model heartbeats and inference feedback.

The orchestrator hands results to `BackgroundPersistence`, which submits the
two writes to a small thread pool and returns immediately. Each write is
attempted once; failures are logged and dropped.

The default store appends to local files under FIELDPULSE_DATA_DIR:
    ml_models.json      heartbeat per engine version (upserted)
    ml_feedback.jsonl   one line per inference event (appended)
"""

from __future__ import annotations

import json
import logging
import os
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Protocol

from src.engine.types import InferenceResult

logger = logging.getLogger(__name__)

ENGINE_VERSION = "fieldpulse-ml-v1"
DATA_DIR = Path(os.getenv("FIELDPULSE_DATA_DIR", "data"))


class FeedbackStore(Protocol):
    def upsert_heartbeat(self, version: str) -> None: ...

    def append_feedback(self, event_id: str, snapshot: dict[str, Any]) -> None: ...


class JsonFileFeedbackStore:
    """FeedbackStore backed by a JSON document and a JSONL log."""

    def __init__(self, data_dir: Path | str = DATA_DIR) -> None:
        self.data_dir = Path(data_dir)
        self.models_path = self.data_dir / "ml_models.json"
        self.feedback_path = self.data_dir / "ml_feedback.jsonl"
        self._lock = threading.Lock()

    def upsert_heartbeat(self, version: str) -> None:
        with self._lock:
            self.data_dir.mkdir(parents=True, exist_ok=True)
            models: dict[str, Any] = {}
            if self.models_path.exists():
                try:
                    models = json.loads(self.models_path.read_text(encoding="utf-8"))
                except json.JSONDecodeError:
                    logger.warning("Corrupt %s; rewriting heartbeat document", self.models_path)
            entry = models.get(version, {})
            entry.update({
                "version": version,
                "updatedAt": datetime.now(timezone.utc).isoformat(),
                "objectiveDefault": "balanced",
            })
            models[version] = entry
            self.models_path.write_text(json.dumps(models, indent=2), encoding="utf-8")

    def append_feedback(self, event_id: str, snapshot: dict[str, Any]) -> None:
        record = {"eventId": event_id, **snapshot}
        with self._lock:
            self.data_dir.mkdir(parents=True, exist_ok=True)
            with self.feedback_path.open("a", encoding="utf-8") as f:
                f.write(json.dumps(record) + "\n")


def feedback_snapshot(result: InferenceResult, plot_id: str | None = None, feedback: str = "neutral") -> dict[str, Any]:
    """Flat, JSON-serializable subset of a result worth keeping."""
    return {
        "plotId": plot_id,
        "feedback": feedback,
        "createdAt": datetime.now(timezone.utc).isoformat(),
        "engine": result.engine,
        "objective": result.objective,
        "confidence": result.confidence,
        "dataQuality": result.data_quality.model_dump(by_alias=True),
        "anomaly": result.anomaly.model_dump(by_alias=True),
    }


class BackgroundPersistence:
    """Fire-and-forget dispatcher in front of a FeedbackStore."""

    def __init__(self, store: FeedbackStore | None = None, max_workers: int = 2) -> None:
        self.store = store if store is not None else JsonFileFeedbackStore()
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="fieldpulse-persist")

    def _attempt(self, label: str, fn: Callable[..., None], *args: Any) -> None:
        try:
            fn(*args)
        except Exception:
            logger.warning("Persistence %s failed; dropping", label, exc_info=True)

    def _submit(self, label: str, fn: Callable[..., None], *args: Any) -> None:
        try:
            self._executor.submit(self._attempt, label, fn, *args)
        except RuntimeError:
            logger.warning("Persistence executor unavailable; dropping %s", label)

    def record(self, event_id: str, result: InferenceResult) -> None:
        self._submit("heartbeat", self.store.upsert_heartbeat, result.engine)
        self._submit("feedback", self.store.append_feedback, event_id, feedback_snapshot(result))

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)
