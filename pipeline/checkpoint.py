"""Checkpoint store: one JSON file per job, last-good-checkpoint durability.

File shape (camelCase, no variant tag)::

    {"processedCount": 300, "successCount": 297, "failureCount": 3,
     "totalDiseases": 512, "savedFiles": ["batch-1-<jobId>.csv", ...]}

Older files carry ``results`` (the streamed result events) instead of
``savedFiles``; the reader tells the two apart by which key is present.
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from extraction import RowResult

from .events import result_event

logger = logging.getLogger(__name__)


class JobAggregates(BaseModel):
    """Running counters of a job. Mutated only by the scheduler's coordinator."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    processed_count: int = Field(default=0, ge=0)
    success_count: int = Field(default=0, ge=0)
    failure_count: int = Field(default=0, ge=0)
    total_diseases: int = Field(default=0, ge=0)

    def add(self, result: RowResult) -> None:
        self.processed_count += 1
        if result.succeeded:
            self.success_count += 1
            self.total_diseases += len(result.diseases)
        else:
            self.failure_count += 1

    @classmethod
    def from_results(cls, results: list[RowResult], processed_count: int | None = None) -> "JobAggregates":
        aggregates = cls()
        for result in results:
            aggregates.add(result)
        if processed_count is not None:
            aggregates.processed_count = processed_count
        return aggregates


class FullResultsCheckpoint(JobAggregates):
    """Every result so far is stored inline (small jobs, older files)."""

    kind: Literal["full_results"] = Field(default="full_results", exclude=True)
    results: list[RowResult] = Field(default_factory=list)


class BatchRefsCheckpoint(JobAggregates):
    """Results live in exported batch files; only their names are stored."""

    kind: Literal["batch_refs"] = Field(default="batch_refs", exclude=True)
    saved_files: list[str] = Field(default_factory=list)


Checkpoint = FullResultsCheckpoint | BatchRefsCheckpoint

_COUNTER_KEYS = ("processedCount", "successCount", "failureCount", "totalDiseases")


def checkpoint_to_dict(checkpoint: Checkpoint) -> dict[str, Any]:
    """Serialize to the on-disk shape."""
    data = {
        "processedCount": checkpoint.processed_count,
        "successCount": checkpoint.success_count,
        "failureCount": checkpoint.failure_count,
        "totalDiseases": checkpoint.total_diseases,
    }
    if isinstance(checkpoint, FullResultsCheckpoint):
        results = []
        for result in checkpoint.results:
            entry = result_event(result).model_dump(mode="json", by_alias=True, exclude_none=True)
            entry["index"] = result.index + 1  # stored events are 1-based
            results.append(entry)
        data["results"] = results
    else:
        data["savedFiles"] = list(checkpoint.saved_files)
    return data


def checkpoint_from_dict(data: Any) -> Checkpoint:
    """Parse the on-disk shape.

    Raises:
        ValueError: If the content is not a recognizable checkpoint
    """
    if not isinstance(data, dict):
        raise ValueError("checkpoint must be a JSON object")

    results = data.get("results")
    if isinstance(results, list) and results:
        if not all(isinstance(entry, dict) for entry in results):
            raise ValueError("checkpoint results must be JSON objects")
        parsed = [RowResult.from_legacy_event(entry) for entry in results]
        parsed.sort(key=lambda r: r.index)
        processed = data.get("processedCount")
        aggregates = JobAggregates.from_results(
            parsed, processed_count=int(processed) if processed is not None else None
        )
        return FullResultsCheckpoint(results=parsed, **aggregates.model_dump())

    if "savedFiles" in data or "processedCount" in data:
        counters = {key: data.get(key, 0) for key in _COUNTER_KEYS}
        return BatchRefsCheckpoint.model_validate({**counters, "savedFiles": data.get("savedFiles") or []})

    raise ValueError("checkpoint has neither results nor processedCount")


class CheckpointStore:
    """Save/load/delete checkpoints keyed by job id.

    Single writer per job id. ``save`` goes through a temporary file in the
    same directory and ``os.replace``, so the previous checkpoint survives a
    crash mid-write.
    """

    def __init__(self, directory: Path):
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    def path_for(self, job_id: str) -> Path:
        return self.directory / f"disease-extraction-{job_id}.json"

    def exists(self, job_id: str) -> bool:
        return self.path_for(job_id).exists()

    def save(self, job_id: str, checkpoint: Checkpoint) -> Path:
        target = self.path_for(job_id)
        payload = json.dumps(checkpoint_to_dict(checkpoint), ensure_ascii=False)

        fd, tmp_name = tempfile.mkstemp(
            dir=self.directory, prefix=f".{target.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, target)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        return target

    def load(self, job_id: str) -> Checkpoint | None:
        """Return the checkpoint, or None if missing or unreadable."""
        path = self.path_for(job_id)
        try:
            raw = path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.warning("Cannot read checkpoint %s: %s", path, e)
            return None

        try:
            return checkpoint_from_dict(json.loads(raw.decode("utf-8")))
        except (ValueError, TypeError, ValidationError) as e:
            # UnicodeDecodeError and json.JSONDecodeError are ValueErrors
            logger.warning("Ignoring corrupt checkpoint %s: %s", path, e)
            return None

    def delete(self, job_id: str) -> None:
        self.path_for(job_id).unlink(missing_ok=True)
