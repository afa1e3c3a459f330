"""CSV batch exports: each checkpoint interval's results go to their own file."""

import csv
from pathlib import Path

from extraction import RowResult

from .errors import format_error

EXPORT_HEADERS = ["序号", "原始文本", "识别到的病种", "状态"]


class BatchExporter:
    """Write ``batch-{n}-{job_id}.csv`` files into one directory.

    Files are UTF-8 with a BOM so spreadsheet applications detect the encoding.
    """

    def __init__(self, directory: Path, job_id: str):
        self.directory = Path(directory)
        self.job_id = job_id
        self.directory.mkdir(parents=True, exist_ok=True)

    def filename_for(self, batch_number: int) -> str:
        return f"batch-{batch_number}-{self.job_id}.csv"

    def path_for(self, filename: str) -> Path:
        """Resolve an export filename, refusing anything outside the directory."""
        if Path(filename).name != filename:
            raise ValueError(f"Invalid export filename: {filename}")
        return self.directory / filename

    def export(self, results: list[RowResult], batch_number: int) -> str:
        """Write one batch and return its filename (not the full path)."""
        filename = self.filename_for(batch_number)
        path = self.directory / filename
        with path.open("w", encoding="utf-8-sig", newline="") as f:
            writer = csv.writer(f)
            writer.writerow(EXPORT_HEADERS)
            for result in sorted(results, key=lambda r: r.index):
                if result.error is None:
                    status = "成功"
                else:
                    status = f"失败: {format_error(result.error, result.error_message or '')}"
                writer.writerow([
                    result.index + 1,
                    result.original_text,
                    "; ".join(result.diseases),
                    status,
                ])
        return filename
