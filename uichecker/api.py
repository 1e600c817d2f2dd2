"""
HTTP API for on-demand comparisons.

POST /compare accepts a solution archive plus one or more student archives
and answers with the run result as camelCase JSON. Artifacts of every run
are served under /temp/<run_id>/... so a front end can show the screenshots
and diffs.
"""

import asyncio
import logging
import uuid
from collections.abc import Callable

from flask import Flask, jsonify, request, send_from_directory
from flask_cors import CORS
from werkzeug.datastructures import FileStorage
from werkzeug.utils import secure_filename

from .config import ARTIFACTS_URL_PREFIX
from .config_loader import CheckerConfig
from .dependency_reconciler import MasterStore
from .models import BatchItemResult, BatchResult, PageResult, Submission
from .orchestrator import BatchOrchestrator, build_orchestrator

logger = logging.getLogger(__name__)


def _page_response(page: PageResult, url_prefix: str) -> dict:
    return {
        "score": page.score,
        "solutionImage": f"{url_prefix}/{page.reference_image}",
        "studentImage": f"{url_prefix}/{page.submission_image}",
        "diffImage": f"{url_prefix}/{page.diff_image}",
    }


def _item_response(item: BatchItemResult, url_prefix: str) -> dict:
    payload = {
        "label": item.label,
        "studentName": item.label,
        "submissionId": item.submission_id,
        "status": item.status,
        "timings": dict(item.timings),
    }
    if item.status == "success":
        payload["overallScore"] = item.overall_score
        payload["pages"] = {
            name: _page_response(page, url_prefix) for name, page in (item.pages or {}).items()
        }
    else:
        payload["errorMessage"] = item.error_message
        payload["error"] = item.error_message
    return payload


def to_response(batch: BatchResult, url_prefix: str = ARTIFACTS_URL_PREFIX) -> dict:
    """
    Serialize a batch result in the camelCase shape the front end reads.

    Successful items carry ``overallScore`` and ``pages`` with image paths
    rewritten to artifact URLs; failed items carry ``errorMessage`` (also
    under ``error``) and no score.

    Args:
        batch: Result of a run.
        url_prefix: URL under which the work directory is served.

    Returns:
        JSON-ready dictionary.
    """
    return {
        "runId": batch.run_id,
        "createdAt": batch.created_at.isoformat(),
        "solutionLabel": batch.solution_label,
        "results": [_item_response(item, url_prefix) for item in batch.results],
        "timings": dict(batch.timings),
    }


def create_app(
    config: CheckerConfig,
    orchestrator_factory: Callable[[], BatchOrchestrator] | None = None,
) -> Flask:
    """
    Create the Flask application.

    Args:
        config: Loaded configuration (work and upload directories, pipeline tuning).
        orchestrator_factory: Returns the orchestrator for one request. Defaults
            to one built from ``config`` around a single shared MasterStore.

    Returns:
        Configured Flask app.
    """
    app = Flask(__name__)
    CORS(app)

    work_dir = config.work_dir.resolve()
    uploads_dir = config.uploads_dir.resolve()
    work_dir.mkdir(parents=True, exist_ok=True)
    uploads_dir.mkdir(parents=True, exist_ok=True)

    if orchestrator_factory is None:
        master_store = MasterStore(config.master_project_dir)

        def orchestrator_factory() -> BatchOrchestrator:
            return build_orchestrator(config, master_store=master_store)

    def save_upload(upload: FileStorage) -> Submission:
        label = upload.filename or "upload.zip"
        target = uploads_dir / f"{uuid.uuid4().hex}-{secure_filename(label) or 'upload.zip'}"
        upload.save(target)
        return Submission(label=label, archive_path=target)

    @app.before_request
    def log_request():
        logger.info("%s %s", request.method, request.path)

    @app.route("/health", methods=["GET"])
    def health():
        return jsonify({"status": "ok"})

    @app.route(f"{ARTIFACTS_URL_PREFIX}/<path:path>", methods=["GET"])
    def serve_artifact(path):
        return send_from_directory(work_dir, path)

    @app.route("/compare", methods=["POST"])
    def compare():
        solution_file = request.files.get("solution")
        student_files = [f for f in request.files.getlist("student") if f.filename]
        if solution_file is None or not solution_file.filename or not student_files:
            return jsonify({"error": "Please upload a solution and at least one student archive"}), 400

        solution = save_upload(solution_file)
        submissions = [save_upload(f) for f in student_files]
        logger.info("Comparing %s student archive(s) against %s", len(submissions), solution.label)

        try:
            orchestrator = orchestrator_factory()
            batch = asyncio.run(orchestrator.run(solution, submissions, discard_archives=True))
        except Exception as e:
            logger.exception("Comparison failed")
            for item in [solution, *submissions]:
                item.archive_path.unlink(missing_ok=True)
            return jsonify({"error": str(e) or type(e).__name__}), 500

        return jsonify(to_response(batch))

    return app
