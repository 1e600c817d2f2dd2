"""
Batch orchestration of one solution run and N student runs.

The solution is extracted, served and captured first; its screenshots are
the reference for every student. Students are then processed in fixed-size
batches: all members of a batch run concurrently, batches run one after the
other. A failing student never affects its siblings, while a failing
solution aborts the whole request.
"""

import asyncio
import logging
import re
import socket
import time
import uuid
import zipfile
from collections.abc import Callable
from contextlib import AsyncExitStack
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from .config import (
    BATCH_SIZE,
    DEFAULT_ROUTES,
    DIFFS_DIRNAME,
    RAW_DIRNAME,
    SCREENSHOTS_DIRNAME,
    SERVER_HOST,
    SOLUTION_DIRNAME,
    STUDENTS_DIRNAME,
)
from .config_loader import CheckerConfig
from .dependency_reconciler import MasterStore
from .exceptions import CheckerError
from .image_comparator import ImageComparator
from .models import BatchItemResult, BatchResult, PageResult, Submission
from .project_resolver import find_project_root
from .screenshot_capturer import ScreenshotCapturer, route_display_name, screenshot_filename
from .server_launcher import ServerLauncher

logger = logging.getLogger(__name__)


def find_free_port(host: str = SERVER_HOST) -> int:
    """Ask the OS for a port that is currently free."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind((host, 0))
        return sock.getsockname()[1]


def extract_archive(archive_path: Path, dest_dir: Path) -> None:
    """Extract a ZIP archive (member paths are sanitised by zipfile)."""
    dest_dir.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(archive_path) as archive:
        archive.extractall(dest_dir)


def chunked(items: list, size: int) -> list[list]:
    """Split items into consecutive batches of at most ``size``."""
    return [items[i:i + size] for i in range(0, len(items), size)]


def slugify(label: str) -> str:
    slug = re.sub(r"[^A-Za-z0-9._-]+", "-", label).strip("-.")
    return slug or "submission"


def _elapsed(start: float) -> str:
    return f"{time.perf_counter() - start:.2f}s"


@dataclass
class RunContext:
    """
    Per-request workspace.

    Attributes:
        run_id: Unique run identifier (timestamp plus random suffix).
        run_dir: Directory owning every artifact of the run.
    """

    run_id: str
    run_dir: Path

    @classmethod
    def create(cls, work_dir: Path) -> "RunContext":
        run_id = f"{datetime.now():%Y%m%d-%H%M%S}-{uuid.uuid4().hex[:8]}"
        run_dir = work_dir / run_id
        run_dir.mkdir(parents=True, exist_ok=False)
        return cls(run_id=run_id, run_dir=run_dir)

    @property
    def solution_dir(self) -> Path:
        return self.run_dir / SOLUTION_DIRNAME

    def submission_dir(self, submission_id: str) -> Path:
        return self.run_dir / STUDENTS_DIRNAME / submission_id


class BatchOrchestrator:
    """
    Drives the solution pipeline followed by batched student pipelines.
    """

    def __init__(
        self,
        launcher: ServerLauncher,
        capturer: ScreenshotCapturer,
        comparator: ImageComparator,
        work_dir: Path,
        routes: list[str] | None = None,
        batch_size: int = BATCH_SIZE,
        port_allocator: Callable[[], int] = find_free_port,
    ) -> None:
        """
        Initialize the orchestrator.

        Args:
            launcher: Starts servers for resolved projects.
            capturer: Takes screenshots of running servers.
            comparator: Scores submission screenshots against the reference.
            work_dir: Root under which each run gets its own directory.
            routes: Routes to capture and compare (default ``["/"]``).
            batch_size: Number of students processed concurrently.
            port_allocator: Returns a free port for each new server.

        Raises:
            ValueError: If ``batch_size`` is below 1, ``routes`` is empty, or two
                routes map to the same screenshot file.
        """
        if batch_size < 1:
            raise ValueError(f"batch_size must be at least 1, got {batch_size}")
        routes = list(routes) if routes is not None else list(DEFAULT_ROUTES)
        if not routes:
            raise ValueError("At least one route is required")
        filenames: dict[str, str] = {}
        for route in routes:
            other = filenames.setdefault(screenshot_filename(route), route)
            if other != route:
                raise ValueError(f"Routes {other!r} and {route!r} both map to {screenshot_filename(route)}")

        self.launcher = launcher
        self.capturer = capturer
        self.comparator = comparator
        self.work_dir = work_dir.resolve()
        self.routes = routes
        self.batch_size = batch_size
        self.port_allocator = port_allocator

    async def run(
        self,
        solution: Submission,
        submissions: list[Submission],
        discard_archives: bool = False,
    ) -> BatchResult:
        """
        Evaluate every submission against the solution.

        Args:
            solution: Reference archive.
            submissions: Student archives, evaluated in order.
            discard_archives: Delete all archives once the request is over
                (used for uploaded temporary files).

        Returns:
            BatchResult with one item per submission, in submission order.

        Raises:
            CheckerError: If the solution pipeline fails (nothing to compare against).
            OSError: If the solution archive cannot be extracted.
        """
        started = time.perf_counter()
        context = RunContext.create(self.work_dir)
        timings: dict[str, str] = {}
        results: list[BatchItemResult] = []
        logger.info(
            "Run %s: comparing %s submission(s) against %s",
            context.run_id, len(submissions), solution.label,
        )

        try:
            async with AsyncExitStack() as stack:
                step = time.perf_counter()
                reference_dir = await self._run_solution(solution, context, stack)
                timings["solution"] = _elapsed(step)

                step = time.perf_counter()
                queued = [
                    (submission, f"{index:02d}-{slugify(submission.label)}")
                    for index, submission in enumerate(submissions, 1)
                ]
                batches = chunked(queued, self.batch_size)
                for number, batch in enumerate(batches, 1):
                    logger.info("Processing batch %s/%s (%s submission(s))", number, len(batches), len(batch))
                    results.extend(
                        await asyncio.gather(
                            *(
                                self._run_student(submission, submission_id, reference_dir, context)
                                for submission, submission_id in batch
                            )
                        )
                    )
                timings["students"] = _elapsed(step)
        finally:
            if discard_archives:
                self._discard_archives([solution, *submissions])

        timings["overall"] = _elapsed(started)
        logger.info("Run %s complete. Timings: %s", context.run_id, timings)
        return BatchResult(
            run_id=context.run_id,
            solution_label=solution.label,
            results=results,
            timings=timings,
        )

    async def _run_solution(
        self,
        solution: Submission,
        context: RunContext,
        stack: AsyncExitStack,
    ) -> Path:
        """Serve and capture the solution; its server lives until ``stack`` closes."""
        raw_dir = context.solution_dir / RAW_DIRNAME
        screenshots_dir = context.solution_dir / SCREENSHOTS_DIRNAME

        logger.info("Extracting solution %s...", solution.label)
        await asyncio.to_thread(extract_archive, solution.archive_path, raw_dir)
        project = find_project_root(raw_dir)

        server = await stack.enter_async_context(
            self.launcher.running(project, self.port_allocator())
        )
        logger.info("Capturing solution screenshots...")
        captured = await self.capturer.capture(server.base_url, self.routes, screenshots_dir)
        if not captured:
            raise CheckerError(f"Solution produced no screenshots for routes {', '.join(self.routes)}")
        return screenshots_dir

    async def _run_student(
        self,
        submission: Submission,
        submission_id: str,
        reference_dir: Path,
        context: RunContext,
    ) -> BatchItemResult:
        """Evaluate one student; every failure becomes an error result."""
        student_dir = context.submission_dir(submission_id)
        screenshots_dir = student_dir / SCREENSHOTS_DIRNAME
        timings: dict[str, str] = {}
        started = time.perf_counter()

        try:
            step = time.perf_counter()
            await asyncio.to_thread(extract_archive, submission.archive_path, student_dir / RAW_DIRNAME)
            timings["unzip"] = _elapsed(step)

            step = time.perf_counter()
            project = find_project_root(student_dir / RAW_DIRNAME)
            timings["rootDetection"] = _elapsed(step)

            step = time.perf_counter()
            async with self.launcher.running(project, self.port_allocator()) as server:
                timings["setup"] = _elapsed(step)
                step = time.perf_counter()
                logger.info("Capturing screenshots for %s...", submission.label)
                await self.capturer.capture(server.base_url, self.routes, screenshots_dir)
                timings["screenshot"] = _elapsed(step)

            step = time.perf_counter()
            pages = await self._compare_routes(reference_dir, screenshots_dir, student_dir / DIFFS_DIRNAME)
            timings["comparison"] = _elapsed(step)
        except Exception as e:
            message = str(e) or type(e).__name__
            logger.error("Pipeline failed for %s: %s", submission.label, message)
            timings["total"] = _elapsed(started)
            return BatchItemResult(
                label=submission.label,
                submission_id=submission_id,
                status="error",
                error_message=message,
                timings=timings,
            )

        scores = [page.score for page in pages.values()]
        overall = round(min(100.0, max(0.0, sum(scores) / len(scores))), 1)
        timings["total"] = _elapsed(started)
        logger.info("%s scored %.1f%%", submission.label, overall)
        return BatchItemResult(
            label=submission.label,
            submission_id=submission_id,
            status="success",
            overall_score=overall,
            pages=pages,
            timings=timings,
        )

    async def _compare_routes(
        self,
        reference_dir: Path,
        screenshots_dir: Path,
        diffs_dir: Path,
    ) -> dict[str, PageResult]:
        pages: dict[str, PageResult] = {}
        for route in self.routes:
            filename = screenshot_filename(route)
            result = await asyncio.to_thread(
                self.comparator.compare,
                reference_dir / filename,
                screenshots_dir / filename,
                diffs_dir / filename,
            )
            pages[route_display_name(route)] = PageResult(
                score=result.similarity_score,
                reference_image=self._relative(result.reference_image_path),
                submission_image=self._relative(result.submission_image_path),
                diff_image=self._relative(result.diff_image_path),
            )
        return pages

    def _relative(self, path: Path) -> str:
        return path.relative_to(self.work_dir).as_posix()

    @staticmethod
    def _discard_archives(archives: list[Submission]) -> None:
        for item in archives:
            try:
                item.archive_path.unlink(missing_ok=True)
            except OSError as e:
                logger.warning("Could not remove archive %s: %s", item.archive_path, e)


def build_orchestrator(config: CheckerConfig, master_store: MasterStore | None = None) -> BatchOrchestrator:
    """
    Wire a BatchOrchestrator from a loaded configuration.

    Args:
        config: Loaded configuration.
        master_store: Shared master install; created from the config when omitted.
            Long-lived processes should pass one store to every orchestrator.

    Returns:
        A ready-to-run orchestrator.
    """
    if master_store is None:
        master_store = MasterStore(config.master_project_dir)
    launcher = ServerLauncher(
        master_store=master_store,
        poll_interval=config.ready_poll_interval,
        max_attempts=config.ready_max_attempts,
        mock_api_port=config.mock_api_port,
        mock_api_grace_seconds=config.mock_api_grace_seconds,
        static_command=config.static_server_command,
    )
    capturer = ScreenshotCapturer(
        viewport_width=config.viewport_width,
        viewport_height=config.viewport_height,
        settle_delay_ms=config.settle_delay_ms,
    )
    comparator = ImageComparator(
        threshold=config.diff_threshold,
        include_anti_aliasing=config.include_anti_aliasing,
    )
    return BatchOrchestrator(
        launcher=launcher,
        capturer=capturer,
        comparator=comparator,
        work_dir=config.work_dir,
        routes=config.routes,
        batch_size=config.batch_size,
    )
