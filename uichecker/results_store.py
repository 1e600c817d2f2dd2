"""
Results persistence for batch runs.

Saves each run's aggregate result next to its artifacts, as JSON and as a
CSV summary for spreadsheets.
"""

import csv
import json
from pathlib import Path

from .config import RESULTS_CSV_FILENAME, RESULTS_JSON_FILENAME
from .models import BatchResult


class ResultsAggregator:
    """
    Writes a BatchResult into its run directory.
    """

    def __init__(self, work_dir: Path) -> None:
        """
        Initialize the aggregator.

        Args:
            work_dir: Root directory holding one subdirectory per run.
        """
        self.work_dir = work_dir

    def save(self, batch: BatchResult) -> dict[str, Path]:
        """
        Save a batch result.

        Creates:
        - results.json with the complete BatchResult
        - results.csv with one row per submission

        Args:
            batch: Result to save.

        Returns:
            Dictionary of output file paths.
        """
        run_dir = self.work_dir / batch.run_id
        run_dir.mkdir(parents=True, exist_ok=True)

        json_path = run_dir / RESULTS_JSON_FILENAME
        with open(json_path, "w", encoding="utf-8") as f:
            f.write(batch.model_dump_json(indent=2))

        csv_path = run_dir / RESULTS_CSV_FILENAME
        self._save_csv(batch, csv_path)

        return {"results_json": json_path, "results_csv": csv_path}

    def statistics(self, batch: BatchResult) -> dict:
        """
        Summary statistics over the successful submissions.

        Returns:
            Dictionary with counts and score statistics.
        """
        scores = [r.overall_score for r in batch.results if r.status == "success"]
        failed = sum(1 for r in batch.results if r.status == "error")
        if not scores:
            return {"evaluated": 0, "failed": failed}

        return {
            "evaluated": len(scores),
            "failed": failed,
            "average_score": round(sum(scores) / len(scores), 1),
            "highest_score": max(scores),
            "lowest_score": min(scores),
        }

    def _save_csv(self, batch: BatchResult, csv_path: Path) -> None:
        page_names: list[str] = []
        for result in batch.results:
            for name in result.pages or {}:
                if name not in page_names:
                    page_names.append(name)

        header = ["submission_id", "label", "status", "overall_score"]
        header.extend(page_names)
        header.append("error_message")

        with open(csv_path, "w", newline="", encoding="utf-8") as f:
            writer = csv.writer(f)
            writer.writerow(header)

            for result in batch.results:
                pages = result.pages or {}
                row = [
                    result.submission_id,
                    result.label,
                    result.status,
                    "" if result.overall_score is None else f"{result.overall_score:.1f}",
                ]
                row.extend(f"{pages[name].score:.1f}" if name in pages else "" for name in page_names)
                row.append((result.error_message or "")[:200])
                writer.writerow(row)


def load_batch_result(run_dir: Path) -> BatchResult:
    """
    Load a saved batch result.

    Args:
        run_dir: Directory of the run.

    Returns:
        The BatchResult stored in results.json.

    Raises:
        FileNotFoundError: If the run has no results.json.
    """
    with open(run_dir / RESULTS_JSON_FILENAME, "r", encoding="utf-8") as f:
        return BatchResult(**json.load(f))


def find_latest_run(work_dir: Path) -> Path | None:
    """
    Find the most recent run directory that has saved results.

    Run identifiers start with a sortable timestamp, so name order is
    chronological order.

    Returns:
        Path to the run directory, or None if there is none.
    """
    if not work_dir.is_dir():
        return None
    runs = sorted(
        item for item in work_dir.iterdir()
        if item.is_dir() and (item / RESULTS_JSON_FILENAME).exists()
    )
    return runs[-1] if runs else None
