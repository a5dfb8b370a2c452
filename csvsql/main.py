from __future__ import annotations

import sys
from pathlib import Path

import pandas as pd
import streamlit as st

# Ensure package imports work when launched as a file via `streamlit run csvsql/main.py`.
ROOT_DIR = Path(__file__).resolve().parent.parent
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from csvsql.services.errors import CsvSqlError  # noqa: E402
from csvsql.services.ingestion import CsvUpload  # noqa: E402
from csvsql.services.self_test import run_self_test, self_test_status  # noqa: E402
from csvsql.services.session import AnalysisSession  # noqa: E402
from csvsql.utils.logging import get_logger, log_event  # noqa: E402
from csvsql.utils.session_state import (  # noqa: E402
    get_analysis_session,
    reset_analysis_session,
    update_session_state,
)

LOGGER = get_logger(__name__)

APP_TITLE = "CSV SQL Explorer"
STATUS_ICONS = {"success": "✅", "failed": "❌", "running": "⏳"}


def _format_cell(value: object) -> str:
    if isinstance(value, float):
        return f"{value:.2f}"
    return str(value)


def render_upload(session: AnalysisSession) -> None:
    st.subheader("Upload CSV File")
    nonce = int(st.session_state.get("uploader_nonce", 0))
    uploaded = st.file_uploader("Choose CSV File", type=["csv"], key=f"csv_upload_{nonce}")
    if uploaded is not None and st.session_state.get("last_upload_id") != uploaded.file_id:
        update_session_state(last_upload_id=uploaded.file_id)
        with st.spinner("Loading CSV..."):
            try:
                session.load(CsvUpload.from_uploaded_file(uploaded))
            except CsvSqlError:
                pass
    if session.dataset is not None:
        st.caption(f"Loaded: **{session.file_name}** ({session.dataset.row_count:,} rows)")
        if st.button("Clear Dataset"):
            reset_analysis_session()
            # A fresh widget key drops the file still held by the uploader.
            update_session_state(uploader_nonce=nonce + 1)
            log_event(LOGGER, "ui.reset", file_name=session.file_name)
            st.rerun()


def render_query(session: AnalysisSession) -> None:
    if session.dataset is None:
        return
    st.subheader("SQL Query")
    query = st.text_area("Query", value=session.query, height=140, label_visibility="collapsed")
    busy = bool(st.session_state.get("busy"))
    if st.button("Execute Query", type="primary", disabled=busy):
        update_session_state(busy=True)
        try:
            session.run_query(query)
        except CsvSqlError:
            pass
        finally:
            update_session_state(busy=False)


def render_self_test(session: AnalysisSession) -> None:
    if st.button("Run End-to-End Test"):
        placeholder = st.empty()

        def _show(steps) -> None:
            with placeholder.container():
                for step in steps:
                    suffix = f" - {step.message}" if step.message else ""
                    st.write(f"{STATUS_ICONS[step.status]} {step.name}{suffix}")

        steps = run_self_test(session=session, on_update=_show)
        update_session_state(self_test_steps=steps)
        log_event(LOGGER, "ui.self_test", status=self_test_status(steps))

    steps = st.session_state.get("self_test_steps")
    if steps:
        st.markdown("#### Test Results")
        for step in steps:
            suffix = f" - {step.message}" if step.message else ""
            st.write(f"{STATUS_ICONS[step.status]} {step.name}{suffix}")
        if self_test_status(steps) == "success":
            st.success("All tests passed successfully!")


def render_results(session: AnalysisSession) -> None:
    result = session.result
    if result is None:
        return

    st.subheader(f"Query Results ({result.row_count:,} rows)")
    rows = session.display_rows()
    frame = pd.DataFrame(rows, columns=list(result.columns))
    st.dataframe(frame.map(_format_cell), use_container_width=True, hide_index=True)
    if result.row_count > len(rows):
        st.caption(f"Showing first {len(rows)} of {result.row_count:,} rows")

    summary = session.summary()
    if summary is None or not summary.stats:
        return

    st.subheader("Summary Statistics")
    cards = st.columns(3)
    for position, (column, stats) in enumerate(summary.stats.items()):
        with cards[position % 3]:
            st.markdown(f"**{column}**")
            st.table(pd.DataFrame([stats.to_dict()]).T.rename(columns={0: "value"}))

    charts = session.charts()
    if not charts:
        return
    st.subheader("Data Distributions")
    panels = st.columns(2)
    for position, (column, bins) in enumerate(charts.items()):
        with panels[position % 2]:
            st.markdown(f"**{column} Distribution**")
            chart = pd.DataFrame([item.to_dict() for item in bins]).set_index("range")
            st.bar_chart(chart)


def run() -> None:
    st.set_page_config(page_title=APP_TITLE, page_icon="🗃️", layout="wide")
    st.title(APP_TITLE)
    st.caption("Upload CSV data, run SQL queries, and visualize results.")

    session = get_analysis_session()
    render_upload(session)
    render_query(session)
    if session.message:
        st.error(session.message)
    st.divider()
    render_self_test(session)
    st.divider()
    render_results(session)


if __name__ == "__main__":
    run()
