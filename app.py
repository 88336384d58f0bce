import time
from datetime import datetime, timedelta, timezone

import streamlit as st

from core.config import DatasourceSettings, configure_logging
from core.errors import StoreError
from core.models import TimeWindow
from datasource.service import DataQuery, Datasource
from ui.runner import RunnerState, drain, start_background_loop, stop_background_loop
from ui.engine_bridge import DashboardConfig, run_stream_for_ui


# ---------------- Helpers ----------------

def ensure_state():
    if "runner" not in st.session_state:
        st.session_state.runner = RunnerState()
    if "rows" not in st.session_state:
        st.session_state.rows = []
    if "metrics" not in st.session_state:
        st.session_state.metrics = None
    if "last_drained_at" not in st.session_state:
        st.session_state.last_drained_at = 0.0


def absorb(items, max_rows: int):
    for item in items:
        if item.get("type") == "frame":
            data = item["data"]
            for row in data["rows"]:
                st.session_state.rows.append({"device": data["device"], **row})
        elif item.get("type") == "metrics":
            st.session_state.metrics = item["data"]

    if len(st.session_state.rows) > max_rows:
        st.session_state.rows = st.session_state.rows[-max_rows:]
    st.session_state.last_drained_at = time.time()


def run_one_shot(settings: DatasourceSettings, model: dict, hours: int):
    now = datetime.now(timezone.utc)
    window = TimeWindow(start=now - timedelta(hours=hours), end=now)

    ds = Datasource.open(settings)
    try:
        return ds.query_data([DataQuery(ref_id="A", model=model, window=window)])["A"]
    finally:
        ds.dispose()


def safe_float(x, default=0.0):
    try:
        return float(x)
    except (TypeError, ValueError):
        return float(default)


# ---------------- UI ----------------

configure_logging()

st.set_page_config(page_title="Device Telemetry", page_icon="🌡️", layout="wide")
ensure_state()

st.sidebar.title("🌡️ Data source")

mongodb_url = st.sidebar.text_input("MongoDB URL", value="mongodb://localhost:27017")
database = st.sidebar.text_input("Database", value="disruptiveBackup")
settings = DatasourceSettings(mongodb_url=mongodb_url, database=database)

if st.sidebar.button("🩺 Test connection", use_container_width=True):
    try:
        ds = Datasource.open(settings)
    except StoreError as exc:
        st.sidebar.error(str(exc))
    else:
        health = ds.check_health()
        ds.dispose()
        (st.sidebar.success if health.success else st.sidebar.error)(health.message)

st.sidebar.divider()
st.sidebar.subheader("📡 Live stream")

device_id = st.sidebar.text_input("Device id")
interval_s = st.sidebar.slider("Refresh interval (s)", 1, 30, 5, 1)
refresh_ms = st.sidebar.slider("UI refresh (ms)", 200, 3000, 1000, 100)
max_rows = st.sidebar.slider("Max rows kept", 100, 5000, 1000, 100)

cfg = DashboardConfig(
    mongodb_url=mongodb_url,
    database=database,
    device_id=device_id,
    interval_seconds=float(interval_s),
)

c1, c2 = st.sidebar.columns(2)

with c1:
    if st.button("▶ Start", type="primary", use_container_width=True, disabled=not device_id):
        if not st.session_state.runner.is_running():
            st.session_state.rows = []
            st.session_state.runner = start_background_loop(run_stream_for_ui, cfg)

with c2:
    if st.button("⏹ Stop", use_container_width=True):
        stop_background_loop(st.session_state.runner)

running = st.session_state.runner.is_running()
st.sidebar.success("STREAMING ✅" if running else "STOPPED ⏹️")
st.sidebar.caption(f"Last drain: {time.strftime('%H:%M:%S', time.localtime(st.session_state.last_drained_at))}")

st.title("Device telemetry")
st.caption("Projects → devices → time series • live refresh per device")

absorb(drain(st.session_state.runner), max_rows)

# ======================
# Row 1: One-shot queries
# ======================

with st.expander("🔎 Query", expanded=not running):
    entity = st.selectbox("Entity", ["Projects", "Devices", "Events"])
    params = {}
    if entity == "Devices":
        projects_csv = st.text_input("Project ids (comma separated, empty = all)")
        if projects_csv:
            params["projects"] = projects_csv
    elif entity == "Events":
        params["filter"] = st.radio("Filter by", ["projects", "devices"], horizontal=True)
        params[params["filter"]] = st.text_input("Ids (comma separated)")
    hours = st.slider("Look back (hours)", 1, 168, 24)

    if st.button("Run query"):
        try:
            response = run_one_shot(settings, {"entity": entity, "parameters": params}, hours)
        except StoreError as exc:
            st.error(str(exc))
        else:
            if response.error is not None:
                st.error(str(response.error))
            elif entity == "Events":
                for frame in response.frames:
                    label = frame.get_field("Value").labels.get("device", "")
                    st.subheader(f"{frame.name} / {label}")
                    if not frame.rows():
                        st.caption("No representable events in range.")
                        continue
                    st.line_chart(frame.to_records(), x="Time", y="Value")
            else:
                for frame in response.frames:
                    st.dataframe(frame.to_records(), use_container_width=True)

st.divider()

# ======================
# Row 2: Live series
# ======================

with st.expander("📈 Live series", expanded=True):
    rows = st.session_state.rows
    if not rows:
        st.info("No streamed rows yet. Pick a device and press Start.")
    else:
        st.line_chart(rows, x="Time", y="Value", color="device")
        st.dataframe(rows[-25:], use_container_width=True)

# ======================
# Row 3: Stream KPIs
# ======================

with st.expander("✅ Stream KPIs", expanded=True):
    snap = st.session_state.metrics
    if snap is None:
        st.info("No metrics snapshot yet. Wait ~2 seconds after Start.")
    else:
        lat = snap.get("query_latency_ms", {}) or {}

        k1, k2, k3, k4 = st.columns(4)
        k1.metric("Ticks", snap.get("ticks_total", 0))
        k2.metric("Failed ticks", snap.get("ticks_failed", 0))
        k3.metric("Frames emitted", snap.get("frames_emitted", 0))
        k4.metric("Rows emitted", snap.get("rows_emitted", 0))

        l1, l2, l3 = st.columns(3)
        l1.metric("Query avg (ms)", f"{safe_float(lat.get('avg_ms')):.1f}")
        l2.metric("Query p50 (ms)", f"{safe_float(lat.get('p50_ms')):.1f}")
        l3.metric("Query p95 (ms)", f"{safe_float(lat.get('p95_ms')):.1f}")

        with st.expander("Details (raw snapshot JSON)", expanded=False):
            st.json(snap)

if running:
    time.sleep(refresh_ms / 1000.0)
    st.rerun()
