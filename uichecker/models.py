"""
Pydantic models for the UI Checker system.

Defines the structured data passed between pipeline stages and the
aggregate result returned to API and CLI callers.
"""

from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class ProjectKind(str, Enum):
    """How a resolved project is served."""

    DYNAMIC = "dynamic"
    STATIC = "static"


class ProjectInfo(BaseModel):
    """
    A buildable project located inside an extracted archive.

    Attributes:
        root_path: Directory holding the manifest or the markup entry point.
        kind: Whether the project needs a dev server or a static file server.
    """

    model_config = ConfigDict(frozen=True)

    root_path: Path = Field(..., description="Project root directory")
    kind: ProjectKind = Field(..., description="dynamic (package.json) or static (index.html)")


class DependencyStatus(str, Enum):
    """Classification of one declared package against the master store."""

    SATISFIED = "satisfied"
    MISSING = "missing"
    MISMATCHED = "mismatched"


class DependencyReport(BaseModel):
    """
    Result of diffing a submission's dependencies against the master store.

    Attributes:
        satisfied: Packages the master already provides.
        missing: Packages absent from the master manifest.
        mismatched: Packages whose major version differs from the master's.
        install_specs: ``name@version`` specs to install into the master.
    """

    satisfied: list[str] = Field(default_factory=list)
    missing: list[str] = Field(default_factory=list)
    mismatched: list[str] = Field(default_factory=list)
    install_specs: list[str] = Field(default_factory=list)

    @property
    def needs_install(self) -> bool:
        return bool(self.install_specs)


class ComparisonResult(BaseModel):
    """
    Outcome of comparing one reference screenshot with one submission screenshot.

    Attributes:
        similarity_score: Percentage of matching canvas pixels (0-100, one decimal).
        reference_image_path: Screenshot of the solution.
        submission_image_path: Screenshot of the submission.
        diff_image_path: Rendered diff (or best-effort copy on failure).
    """

    similarity_score: float = Field(..., ge=0, le=100)
    reference_image_path: Path
    submission_image_path: Path
    diff_image_path: Path


class PageResult(BaseModel):
    """
    Per-route entry of a successful submission result.

    Image paths are relative to the work directory, so they always start
    with the run identifier and can be exposed under a run-namespaced URL.
    """

    score: float = Field(..., ge=0, le=100, description="Similarity for this route")
    reference_image: str = Field(..., description="Solution screenshot path")
    submission_image: str = Field(..., description="Submission screenshot path")
    diff_image: str = Field(..., description="Diff artifact path")


class BatchItemResult(BaseModel):
    """
    Result for a single submission within a batch request.

    Attributes:
        label: Human readable name (usually the archive file name).
        submission_id: Unique directory name of the submission within the run.
        status: ``success`` when the submission was evaluated, ``error`` otherwise.
        overall_score: Mean of the per-route scores, clamped to [0, 100].
        pages: Per-route comparison details keyed by display name.
        error_message: Failure message when ``status`` is ``error``.
        timings: Stage durations formatted as seconds (e.g. ``"1.25s"``).
    """

    label: str = Field(..., description="Submission label")
    submission_id: str = Field(..., description="Submission directory name")
    status: Literal["success", "error"] = Field(..., description="Evaluation outcome")
    overall_score: float | None = Field(default=None, ge=0, le=100)
    pages: dict[str, PageResult] | None = Field(default=None)
    error_message: str | None = Field(default=None)
    timings: dict[str, str] = Field(default_factory=dict)


class BatchResult(BaseModel):
    """
    Aggregate response for one comparison request.

    Attributes:
        run_id: Unique identifier of the run (also its directory name).
        created_at: When the run started.
        solution_label: Label of the reference archive.
        results: Ordered per-submission results, in submission order.
        timings: Aggregate stage durations.
    """

    run_id: str = Field(..., description="Run identifier")
    created_at: datetime = Field(default_factory=datetime.now)
    solution_label: str = Field(default="solution")
    results: list[BatchItemResult] = Field(default_factory=list)
    timings: dict[str, str] = Field(default_factory=dict)


class Submission(BaseModel):
    """
    An archive queued for evaluation.

    Attributes:
        label: Human readable name shown in results.
        archive_path: Path to the ZIP archive.
    """

    label: str = Field(..., description="Submission label")
    archive_path: Path = Field(..., description="Path to the ZIP archive")
