# boq_reconciler/app.py
# BOQ Reconciler: Streamlit front end over ProjectSession
#
#   streamlit run boq_reconciler/app.py

import json
import logging

import streamlit as st

from boq_reconciler.budget_visualizer import IterationVisualizer
from boq_reconciler.config import DEFAULT_MAX_COEFF, DEFAULT_MIN_COEFF, DEFAULT_PENALTY
from boq_reconciler.csv_readers import read_boq, read_catalogue, read_forecasts
from boq_reconciler.errors import ReconcilerError
from boq_reconciler.models import SolverParameters
from boq_reconciler.session import ProjectSession
from boq_reconciler.validator import validate_iteration

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

# ============================================================
# PAGE CONFIG
# ============================================================
st.set_page_config(page_title="BOQ Reconciler", page_icon="📐", layout="wide")
st.title("📐 BOQ Reconciler")

# ============================================================
# SESSION STATE (single source of truth keys)
# ============================================================
# - session: ProjectSession (documents, catalogue, forecasts, history)
# - upload_errors: list of parse problems from the last upload
# - fc_<stage>: forecast edit widgets, re-synced from the session on every run

if "session" not in st.session_state:
    st.session_state["session"] = ProjectSession(name="streamlit")

if "upload_errors" not in st.session_state:
    st.session_state["upload_errors"] = []

session: ProjectSession = st.session_state["session"]


def money(x: float) -> str:
    return f"{x:,.2f}"


# ============================================================
# 1. UPLOAD
# ============================================================
st.header("1️⃣ Inputs")

col1, col2, col3 = st.columns(3)

with col1:
    boq_files = st.file_uploader("BOQ files (CSV)", type=["csv"], accept_multiple_files=True)
    if boq_files and st.button("Load BOQ files"):
        errors = []
        for f in boq_files:
            items, file_errors = read_boq(f.name, f.getvalue())
            errors.extend(file_errors)
            session.add_document(f.name, items)
        st.session_state["upload_errors"] = errors

with col2:
    cat_file = st.file_uploader("Price catalogue (CSV)", type=["csv"])
    if cat_file and st.button("Load catalogue"):
        entries, st.session_state["upload_errors"] = read_catalogue(cat_file.name, cat_file.getvalue())
        session.set_catalogue(entries)

with col3:
    fc_file = st.file_uploader("Stage forecasts (CSV)", type=["csv"])
    if fc_file and st.button("Load forecasts"):
        forecasts, st.session_state["upload_errors"] = read_forecasts(fc_file.name, fc_file.getvalue())
        try:
            session.set_forecasts(forecasts)
        except ValueError as exc:
            st.error(str(exc))

if st.session_state["upload_errors"]:
    with st.expander(f"⚠️ {len(st.session_state['upload_errors'])} rows skipped"):
        for e in st.session_state["upload_errors"]:
            st.write(f"- {e}")


# Manual forecast edit
def _apply_forecast_edit(stage: str) -> None:
    value = st.session_state[f"fc_{stage}"]
    if value > 0:
        session.set_forecast(stage, value)


with st.expander("✏️ Edit stage forecasts"):
    stages = sorted({i.stage_code for items in session.documents.values() for i in items})
    current = session.forecasts
    for stage in stages:
        # the widget mirrors the session, so a CSV load wins over an older edit
        st.session_state[f"fc_{stage}"] = float(current.get(stage, 0.0))
        st.number_input(
            f"Forecast for {stage}",
            min_value=0.0,
            step=1000.0,
            key=f"fc_{stage}",
            on_change=_apply_forecast_edit,
            args=(stage,),
        )

ready, msg = session.readiness()
docs = session.documents
st.caption(
    f"{len(docs)} BOQ file(s), {sum(len(v) for v in docs.values())} items, "
    f"{len(session.catalogue)} catalogue entries, {len(session.forecasts)} forecasts. {msg}"
)

# ============================================================
# 2. MATCHING
# ============================================================
st.header("2️⃣ Matching")

if st.button("Run matching", disabled=not ready):
    try:
        session.run_matching()
    except ReconcilerError as exc:
        st.error(str(exc))

if session.match_result is not None:
    stats = session.statistics()
    m1, m2, m3, m4 = st.columns(4)
    m1.metric("Line items", stats.total_items)
    m2.metric("Unique positions", stats.unique_positions)
    m3.metric("Matched items", stats.matched_items)
    m4.metric("Unmatched items", stats.unmatched_items)

    unmatched = session.unmatched_candidates()
    if unmatched:
        st.subheader("🔍 Unmatched positions")
        for cand in unmatched:
            label = f"{cand.name} [{cand.unit}], {cand.occurrence_count} occurrence(s)"
            with st.expander(label):
                if not cand.top_matches:
                    st.write("No catalogue entry with an equivalent unit scores high enough.")
                    continue
                options = {
                    f"{m.entry.name} [{m.entry.unit}] @ {money(m.entry.base_price)} (score {m.score:.2f})": m.entry
                    for m in cand.top_matches
                }
                choice = st.selectbox("Catalogue entry", list(options), key=f"sel_{cand.unified_key}")
                if st.button("Apply to all occurrences", key=f"apply_{cand.unified_key}"):
                    session.override_match(cand.unified_key, options[choice])
                    st.rerun()
    else:
        st.success("Every position is matched 🎉")

# ============================================================
# 3. OPTIMIZATION
# ============================================================
st.header("3️⃣ Optimization")

latest = session.iterations[-1] if session.iterations else None
defaults = latest.parameters if latest else SolverParameters(DEFAULT_MIN_COEFF, DEFAULT_MAX_COEFF, DEFAULT_PENALTY)

p1, p2, p3, p4 = st.columns(4)
min_coeff = p1.number_input("Min coefficient", value=float(defaults.min_coeff), step=0.05)
max_coeff = p2.number_input("Max coefficient", value=float(defaults.max_coeff), step=0.05)
penalty = p3.number_input("Penalty λ", value=float(defaults.penalty), min_value=0.0, step=50.0)
adaptive = p4.checkbox("Adapt from previous iteration", value=True)

if st.button("Run iteration", disabled=session.match_result is None):
    try:
        session.run_optimization(SolverParameters(min_coeff, max_coeff, penalty), adaptive=adaptive)
    except ReconcilerError as exc:
        st.error(str(exc))

# ============================================================
# 4. RESULTS
# ============================================================
history = session.iterations
if history:
    st.header("4️⃣ Results")

    numbers = [it.iteration_number for it in history]
    pinned = st.selectbox("Iteration for export", ["latest"] + numbers)
    session.select_iteration(None if pinned == "latest" else pinned)
    result = session.selected_iteration()

    r1, r2, r3, r4 = st.columns(4)
    r1.metric("Forecast", money(result.overall_forecast))
    r2.metric("Proposed", money(result.overall_proposed))
    r3.metric("Gap", money(result.overall_gap), f"{result.gap_percent:.2f}%")
    r4.metric("Solver", result.solver_status, f"{result.duration_ms:.0f} ms")

    report = validate_iteration(result)
    if report["status"] == "error":
        st.error("\n".join(report["notes"]))
    elif report["status"] == "warning":
        st.warning("\n".join(report["notes"]))
    else:
        st.success("Within budget on every stage ✅")

    st.subheader("📊 Stages")
    st.table([s.to_dict() for s in result.per_stage.values()])

    viz = IterationVisualizer(result, history)
    st.pyplot(viz.plot_stage_comparison())
    c1, c2 = st.columns(2)
    with c1:
        st.pyplot(viz.plot_coefficient_distribution())
    with c2:
        st.pyplot(viz.plot_gap_history())

    st.subheader("🧮 Coefficients")
    st.dataframe([a.to_dict() for a in result.coefficients.values()])

    st.download_button(
        "Download iteration (JSON)",
        data=json.dumps(result.to_dict(), ensure_ascii=False, indent=2),
        file_name=f"iteration_{result.iteration_number}.json",
        mime="application/json",
    )
