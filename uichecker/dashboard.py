"""
Dash dashboard for visualizing a batch run.

Run with: python -m uichecker.dashboard --work-dir ./temp
"""

import argparse
import sys
from pathlib import Path

from .models import BatchResult
from .results_store import find_latest_run, load_batch_result

CARD_STYLE = {"flex": "1", "textAlign": "center", "padding": "20px", "backgroundColor": "white", "borderRadius": "8px", "margin": "10px", "boxShadow": "0 2px 4px rgba(0,0,0,0.1)"}
PANEL_STYLE = {"padding": "20px", "backgroundColor": "white", "margin": "20px", "borderRadius": "8px", "boxShadow": "0 2px 4px rgba(0,0,0,0.1)"}


def results_frame(batch: BatchResult):
    """
    Flatten a batch result into one row per submission.

    Args:
        batch: Result of a run.

    Returns:
        pandas DataFrame with Submission, Status, Score and one column per page.
    """
    import pandas as pd

    rows = []
    for result in batch.results:
        row = {
            "Submission": result.label,
            "Id": result.submission_id,
            "Status": result.status,
            "Score": result.overall_score,
        }
        for name, page in (result.pages or {}).items():
            row[name] = page.score
        row["Error"] = result.error_message or ""
        rows.append(row)

    return pd.DataFrame(rows, columns=None if rows else ["Submission", "Id", "Status", "Score", "Error"])


def _card(value: str, label: str, color: str):
    from dash import html

    return html.Div([
        html.H3(value, style={"color": color, "margin": "0"}),
        html.P(label, style={"color": "#7f8c8d", "margin": "0"}),
    ], style=CARD_STYLE)


def create_dashboard(batch: BatchResult, work_dir: Path):
    """
    Create a Dash dashboard for a batch run.

    Args:
        batch: Result to display.
        work_dir: Work directory; image paths in the result are relative to it.
    """
    from flask import send_from_directory
    try:
        import plotly.express as px
        from dash import Dash, dash_table, dcc, html
        from dash.dependencies import Input, Output
    except ImportError:
        print("Dashboard requires additional dependencies. Install with:")
        print("  pip install dash pandas plotly")
        sys.exit(1)

    work_dir = work_dir.resolve()
    df = results_frame(batch)
    scored = df[df["Status"] == "success"]

    app = Dash(__name__, suppress_callback_exceptions=True)

    # Serve screenshots and diffs
    @app.server.route("/files/<path:path>")
    def serve_files(path):
        return send_from_directory(work_dir, path)

    avg_score = scored["Score"].mean() if not scored.empty else 0
    max_score = scored["Score"].max() if not scored.empty else 0
    min_score = scored["Score"].min() if not scored.empty else 0
    failed_count = int((df["Status"] == "error").sum()) if not df.empty else 0

    chart_df = df.fillna({"Score": 0}).sort_values("Score", ascending=False) if not df.empty else df
    app.layout = html.Div([
        # Header
        html.Div([
            html.H1("UI Checker Dashboard", style={"color": "#2c3e50", "marginBottom": "5px"}),
            html.P(f"Run {batch.run_id} against {batch.solution_label}", style={"color": "#7f8c8d", "fontSize": "14px"}),
        ], style={"textAlign": "center", "padding": "20px", "backgroundColor": "#ecf0f1"}),

        # Statistics cards
        html.Div([
            _card(str(len(batch.results)), "Submissions", "#34495e"),
            _card(f"{avg_score:.1f}%", "Average Score", "#3498db"),
            _card(f"{max_score:.1f}%", "Highest Score", "#27ae60"),
            _card(f"{min_score:.1f}%", "Lowest Score", "#e74c3c"),
            _card(f"{failed_count}/{len(batch.results)}", "Failed", "#9b59b6"),
        ], style={"display": "flex", "justifyContent": "center", "padding": "10px 20px"}),

        # Bar chart - scores by submission
        html.Div([
            dcc.Graph(
                id="scores-bar",
                figure=px.bar(
                    chart_df,
                    x="Submission",
                    y="Score",
                    color="Status",
                    color_discrete_map={"success": "#27ae60", "error": "#e74c3c"},
                    title="Similarity by Submission",
                ).update_layout(
                    xaxis_tickangle=-45,
                    plot_bgcolor="white",
                    yaxis_title="Similarity (%)",
                    yaxis_range=[0, 100],
                )
            )
        ], style={"padding": "10px 20px"}),

        # Results table
        html.Div([
            html.H3("Detailed Results", style={"color": "#2c3e50", "marginBottom": "10px"}),
            dash_table.DataTable(
                id="results-table",
                columns=[{"name": col, "id": col} for col in df.columns if col != "Id"],
                data=df.round(1).to_dict("records"),
                sort_action="native",
                filter_action="native",
                style_table={"overflowX": "auto"},
                style_cell={"textAlign": "left", "padding": "10px", "fontSize": "14px"},
                style_header={"backgroundColor": "#3498db", "color": "white", "fontWeight": "bold"},
                style_data_conditional=[
                    {"if": {"filter_query": "{Status} = error"}, "backgroundColor": "#fadbd8"},
                    {"if": {"filter_query": "{Score} >= 90"}, "backgroundColor": "#d5f5e3"},
                ],
            ),
        ], style=PANEL_STYLE),

        # Submission detail
        html.Div([
            html.H3("Submission Detail", style={"color": "#2c3e50", "marginBottom": "10px"}),
            dcc.Dropdown(
                id="submission-dropdown",
                options=[{"label": r.label, "value": r.submission_id} for r in batch.results],
                value=batch.results[0].submission_id if batch.results else None,
                style={"marginBottom": "10px"},
            ),
            html.Div(id="submission-detail"),
        ], style=PANEL_STYLE),
    ], style={"fontFamily": "Arial, sans-serif", "backgroundColor": "#f5f6fa", "minHeight": "100vh"})

    @app.callback(
        Output("submission-detail", "children"),
        Input("submission-dropdown", "value"),
    )
    def update_detail(submission_id: str):
        if not submission_id:
            return html.P("Select a submission to view its screenshots.")

        result = next((r for r in batch.results if r.submission_id == submission_id), None)
        if result is None:
            return html.P("Submission not found.")

        if result.status == "error":
            return html.Div([
                html.H4("Evaluation failed", style={"color": "#e74c3c"}),
                html.Pre(result.error_message or "", style={"whiteSpace": "pre-wrap"}),
                html.P(f"Timings: {result.timings}", style={"color": "#7f8c8d"}),
            ])

        def image_column(title: str, path: str):
            return html.Div([
                html.H5(title),
                html.Img(src=f"/files/{path}", style={"width": "100%", "border": "1px solid #eee"}),
            ], style={"flex": "1", "padding": "5px"})

        sections = [html.H4(f"Overall similarity: {result.overall_score:.1f}%")]
        for name, page in (result.pages or {}).items():
            sections.append(html.Div([
                html.H5(f"{name}: {page.score:.1f}%", style={"marginTop": "20px"}),
                html.Div([
                    image_column("Solution", page.reference_image),
                    image_column("Submission", page.submission_image),
                    image_column("Diff", page.diff_image),
                ], style={"display": "flex"}),
            ]))
        sections.append(html.P(f"Timings: {result.timings}", style={"color": "#7f8c8d"}))
        return html.Div(sections)

    return app


def main() -> int:
    """
    Main entry point for the dashboard.

    Returns:
        Exit code.
    """
    parser = argparse.ArgumentParser(
        description="UI Checker Dashboard - Visualize a comparison run"
    )
    parser.add_argument(
        "--work-dir",
        type=Path,
        default=Path("temp"),
        help="Path to the work directory holding the runs",
    )
    parser.add_argument(
        "--run",
        help="Run identifier (defaults to the most recent run)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=8050,
        help="Port to run the dashboard on",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Run in debug mode",
    )

    args = parser.parse_args()

    run_dir = args.work_dir / args.run if args.run else find_latest_run(args.work_dir)
    if run_dir is None or not run_dir.exists():
        print(f"Error: No saved run found in {args.work_dir}")
        print("Run the checker first to generate results.")
        return 1

    batch = load_batch_result(run_dir)
    print(f"Loaded {len(batch.results)} results from {run_dir}")
    print(f"Starting dashboard at http://localhost:{args.port}")

    app = create_dashboard(batch, work_dir=args.work_dir)
    app.run(debug=args.debug, port=args.port)

    return 0


if __name__ == "__main__":
    sys.exit(main())
