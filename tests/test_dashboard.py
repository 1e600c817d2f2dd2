"""
Tests for the results dashboard.
"""

from uichecker.dashboard import create_dashboard, results_frame
from uichecker.models import BatchItemResult, BatchResult, PageResult


def _batch():
    page = PageResult(
        score=75.0,
        reference_image="run-1/solution/screenshots/index.png",
        submission_image="run-1/students/01-a/screenshots/index.png",
        diff_image="run-1/students/01-a/diffs/index.png",
    )
    return BatchResult(
        run_id="run-1",
        results=[
            BatchItemResult(label="a.zip", submission_id="01-a", status="success", overall_score=75.0, pages={"Home Page": page}),
            BatchItemResult(label="b.zip", submission_id="02-b", status="error", error_message="boom"),
        ],
    )


class TestDashboard:
    """Tests for dashboard construction."""

    def test_results_frame(self):
        """One row per submission with a column per page."""
        df = results_frame(_batch())

        assert list(df["Submission"]) == ["a.zip", "b.zip"]
        assert df.loc[0, "Home Page"] == 75.0
        assert df.loc[1, "Error"] == "boom"

    def test_results_frame_empty(self):
        """An empty batch still has the summary columns."""
        df = results_frame(BatchResult(run_id="run-0"))

        assert df.empty
        assert "Score" in df.columns

    def test_serves_run_files(self, tmp_path):
        """Screenshots are served from the work directory."""
        image = tmp_path / "run-1" / "solution" / "screenshots" / "index.png"
        image.parent.mkdir(parents=True)
        image.write_bytes(b"png")

        app = create_dashboard(_batch(), work_dir=tmp_path)
        client = app.server.test_client()
        response = client.get("/files/run-1/solution/screenshots/index.png")

        assert response.status_code == 200
        assert response.data == b"png"
        response.close()
