"""
UI Checker: Visual regression grading of front-end projects

Usage:
  main.py [--config=PATH]
  main.py (-h | --help)

Options:
  --config=PATH  Path to YAML configuration file [default: checker_config.yml].
  -h --help      Show this screen.
"""

from docopt import docopt
import asyncio
import os
import sys
import webbrowser
from pathlib import Path

from uichecker.api import create_app
from uichecker.config import ARCHIVE_EXTENSIONS
from uichecker.config_loader import CheckerConfig, load_config
from uichecker.dashboard import create_dashboard
from uichecker.exceptions import CheckerError
from uichecker.log_setup import configure_logging
from uichecker.models import BatchItemResult, BatchResult, Submission
from uichecker.orchestrator import build_orchestrator
from uichecker.results_store import ResultsAggregator, find_latest_run, load_batch_result


def find_submissions(config: CheckerConfig) -> list[Submission]:
    """
    Collect student archives from the configuration.

    Explicit ``submission_archives`` come first, followed by the archives
    found in ``submissions_dir``.

    Args:
        config: Loaded configuration.

    Returns:
        List of Submission objects labelled by file name.
    """
    archives = list(config.submission_archives)

    if config.submissions_dir:
        for item in sorted(config.submissions_dir.iterdir()):
            if not item.is_file() or item.name.startswith("."):
                continue
            if item.suffix.lower() not in ARCHIVE_EXTENSIONS:
                continue
            if config.solution_archive and item.resolve() == config.solution_archive.resolve():
                continue
            if item not in archives:
                archives.append(item)

    return [Submission(label=path.name, archive_path=path) for path in archives]


def print_result_summary(result: BatchItemResult) -> None:
    """
    Print a summary of one submission to console.

    Args:
        result: BatchItemResult to summarize.
    """
    print(f"\n  {'='*50}")
    print(f"  Submission: {result.label}")
    if result.status == "error":
        print(f"  Status: ERROR - {result.error_message}")
    else:
        print(f"  Overall Similarity: {result.overall_score:.1f}%")
    print(f"  {'='*50}")

    for name, page in (result.pages or {}).items():
        status = "+" if page.score >= 90 else "-"
        print(f"  [{status}] {name}: {page.score:.1f}%")


def launch_dashboard(batch: BatchResult, work_dir: Path, port: int, verbose: bool) -> int:
    """Open the dashboard in a browser and serve it until interrupted."""
    print("\nLaunching Dashboard...")
    print("Press Ctrl+C to stop the server.")
    try:
        # Only open browser on the main process, not the reloader
        if not os.environ.get("WERKZEUG_RUN_MAIN"):
            url = f"http://127.0.0.1:{port}"
            print(f"Opening {url} in browser...")
            webbrowser.open(url)

        app = create_dashboard(batch, work_dir=work_dir)
        app.run(debug=verbose, port=port)
        return 0
    except Exception as e:
        print(f"Error launching dashboard: {e}")
        return 1


def run_checking_pipeline(config: CheckerConfig, submissions: list[Submission]) -> BatchResult:
    """
    Run one batch: the solution followed by every submission.

    Args:
        config: Loaded configuration with ``solution_archive`` set.
        submissions: Student archives to evaluate.

    Returns:
        The BatchResult, also saved under the run directory.
    """
    solution = Submission(label=config.solution_archive.name, archive_path=config.solution_archive)
    print(f"Comparing {len(submissions)} submission(s) against {solution.label}")
    print(f"Batch size: {config.batch_size}, routes: {', '.join(config.routes)}")

    orchestrator = build_orchestrator(config)
    batch = asyncio.run(orchestrator.run(solution, submissions))

    for result in batch.results:
        print_result_summary(result)

    print("\nSaving results...")
    aggregator = ResultsAggregator(work_dir=orchestrator.work_dir)
    output_files = aggregator.save(batch)
    print(f"  Results JSON: {output_files.get('results_json')}")
    print(f"  Results CSV:  {output_files.get('results_csv')}")

    # Print summary
    stats = aggregator.statistics(batch)
    print("\n" + "=" * 60)
    print("CHECKING COMPLETE")
    print("=" * 60)
    print(f"Total submissions processed: {len(batch.results)}")
    if stats["evaluated"]:
        print(f"Average similarity: {stats['average_score']:.1f}%")
        print(f"Highest: {stats['highest_score']:.1f}%  Lowest: {stats['lowest_score']:.1f}%")
    print(f"Failed: {stats['failed']}/{len(batch.results)}")
    print(f"Timings: {batch.timings}")

    return batch


def main() -> int:
    """
    Main CLI entrypoint.

    Returns:
        Exit code (0 for success, 1 for error).
    """
    arguments = docopt(__doc__)
    config_path = Path(arguments["--config"])

    if not config_path.exists():
        print(f"Error: Configuration file not found at {config_path}")
        return 1

    try:
        config = load_config(config_path)
        print(f"Loaded configuration from {config_path}")
    except Exception as e:
        print(f"Error loading config: {e}")
        return 1

    configure_logging(config.log_file, verbose=config.verbose)

    if config.serve_api:
        print(f"Starting API at http://0.0.0.0:{config.api_port}")
        app = create_app(config)
        app.run(host="0.0.0.0", port=config.api_port, threaded=True)
        return 0

    # Check for only_dashboard mode
    if config.only_dashboard:
        run_dir = find_latest_run(config.work_dir)
        if run_dir is None:
            print(f"Error: No saved run found in {config.work_dir}")
            return 1

        print(f"Launching dashboard from {run_dir}...")
        batch = load_batch_result(run_dir)
        return launch_dashboard(batch, config.work_dir, config.dashboard_port, config.verbose)

    # Validate required paths from config
    if not config.solution_archive:
        print("Error: solution_archive must be specified in the configuration file")
        return 1
    if not config.solution_archive.exists():
        print(f"Error: Solution archive not found: {config.solution_archive}")
        return 1
    if config.submissions_dir and not config.submissions_dir.is_dir():
        print(f"Error: Submissions directory not found: {config.submissions_dir}")
        return 1

    missing = [path for path in config.submission_archives if not path.exists()]
    if missing:
        print(f"Error: Submission archive not found: {missing[0]}")
        return 1

    submissions = find_submissions(config)
    print(f"Found {len(submissions)} submissions")
    if not submissions:
        print("No submissions found!")
        return 1

    try:
        batch = run_checking_pipeline(config, submissions)
    except KeyboardInterrupt:
        print("\nChecking interrupted by user.")
        return 1
    except CheckerError as e:
        print(f"\nSolution failed: {e}")
        return 1
    except Exception as e:
        print(f"\nError: {e}")
        if config.verbose:
            import traceback
            traceback.print_exc()
        return 1

    if config.skip_dashboard or not batch.results:
        return 0
    return launch_dashboard(batch, config.work_dir, config.dashboard_port, config.verbose)


if __name__ == "__main__":
    sys.exit(main())
