"""Per-job context handed to every pipeline component.

Holds the job id, its file locations and the handles (checkpoint store,
exporter, stream, logger) so no component reaches for module-level state.
"""

from dataclasses import dataclass
from pathlib import Path

from .checkpoint import CheckpointStore
from .exports import BatchExporter
from .job_log import JobLogger
from .stream import EventStream


@dataclass(frozen=True)
class JobPaths:
    """Directory layout under the service data directory."""

    data_dir: Path

    @property
    def checkpoint_dir(self) -> Path:
        return self.data_dir / "checkpoints"

    @property
    def export_dir(self) -> Path:
        return self.data_dir / "exports"

    @property
    def log_dir(self) -> Path:
        return self.data_dir / "logs"

    def log_file(self, job_id: str) -> Path:
        return self.log_dir / log_filename(job_id)


def log_filename(job_id: str) -> str:
    return f"analysis-{job_id}.log"


@dataclass
class JobContext:
    job_id: str
    paths: JobPaths
    checkpoints: CheckpointStore
    exporter: BatchExporter
    stream: EventStream
    logger: JobLogger

    @classmethod
    def create(cls, job_id: str, data_dir: Path, stream: EventStream | None = None) -> "JobContext":
        paths = JobPaths(Path(data_dir))
        stream = stream or EventStream()
        return cls(
            job_id=job_id,
            paths=paths,
            checkpoints=CheckpointStore(paths.checkpoint_dir),
            exporter=BatchExporter(paths.export_dir, job_id),
            stream=stream,
            logger=JobLogger(job_id, paths.log_file(job_id), stream),
        )
