import os
import time

import requests
import streamlit as st

API_BASE = os.getenv("CONVERT_SERVICE_API_BASE", os.getenv("API_BASE", "http://localhost:8080")).rstrip("/")
POLL_INTERVAL_SEC = float(os.getenv("CONVERT_SERVICE_UI_POLL_SEC", "0.5"))

STATUS_TEXT = {
    "pending": "Waiting...",
    "converting": "Converting...",
    "completed": "Completed",
    "error": "Error converting file",
    "cancelled": "Cancelled",
}


def _reset_state():
    for key in ["batch_id", "batch", "results", "error"]:
        if key in st.session_state:
            del st.session_state[key]
    # Bump the uploader key to clear any previously uploaded file widget state
    if "upload_key" in st.session_state:
        st.session_state["upload_key"] += 1
    else:
        st.session_state["upload_key"] = 1


def _discard_batch(batch_id: str) -> None:
    try:
        requests.delete(f"{API_BASE}/batches/{batch_id}", timeout=30)
    except requests.RequestException:
        # Server unreachable; it keeps the batch until it is deleted later
        return


def _get(path: str, **params) -> dict | list | None:
    try:
        resp = requests.get(f"{API_BASE}{path}", params=params or None, timeout=30)
    except Exception as e:
        st.session_state["error"] = f"Failed to connect to API: {e}"
        return None
    if resp.status_code != 200:
        st.session_state["error"] = f"Request failed: {resp.status_code} {resp.text}"
        return None
    return resp.json()


def _fetch_options(media_types: list[str], conversion_type: str | None = None) -> dict:
    params: dict[str, object] = {"media_type": media_types}
    if conversion_type:
        params["conversion_type"] = conversion_type
    data = _get("/conversion-options", **params)
    return data if isinstance(data, dict) else {"options": [], "scale_applies": False}


def _start_batch(uploaded_files, conversion_type: str, scale: float) -> str | None:
    files = [
        ("files", (f.name, f.getvalue(), f.type or "application/octet-stream"))
        for f in uploaded_files
    ]
    try:
        resp = requests.post(
            f"{API_BASE}/batches",
            files=files,
            data={"conversion_type": conversion_type, "scale": str(scale)},
            timeout=120,
        )
    except Exception as e:
        st.session_state["error"] = f"Failed to connect to API: {e}"
        return None
    if resp.status_code != 202:
        st.session_state["error"] = f"Conversion not started: {resp.status_code} {resp.text}"
        return None
    data = resp.json()
    st.session_state["batch"] = data
    return str(data.get("id"))


def _download_result(batch_id: str, index: int) -> bytes | None:
    try:
        resp = requests.get(f"{API_BASE}/batches/{batch_id}/jobs/{index}/result", timeout=60)
    except Exception as e:
        st.session_state["error"] = f"Download failed: {e}"
        return None
    if resp.status_code != 200:
        st.session_state["error"] = f"Download error: {resp.status_code} {resp.text}"
        return None
    return resp.content


def _render_jobs(slot, jobs: list[dict]) -> None:
    with slot.container():
        for job in jobs:
            size_mb = int(job.get("size_bytes", 0)) / 1024 / 1024
            st.markdown(f"**{job.get('filename')}** · {size_mb:.2f} MB")
            st.progress(min(max(int(job.get("progress", 0)), 0), 100))
            text = STATUS_TEXT.get(str(job.get("status")), str(job.get("status")))
            if job.get("status") == "error":
                st.error(text)
            elif job.get("status") == "completed":
                st.success(text)
            else:
                st.caption(text)


def main() -> None:
    st.set_page_config(page_title="File Conversion Service", page_icon="🔁", layout="centered")
    st.title("🔁 File Conversion Service")
    st.caption(f"API base: {API_BASE}")

    if st.button("Restart", type="secondary"):
        if "batch_id" in st.session_state:
            _discard_batch(st.session_state["batch_id"])
        _reset_state()
        st.rerun()

    # Step 1: upload
    if "upload_key" not in st.session_state:
        st.session_state["upload_key"] = 0
    st.subheader("1. Upload files")
    uploaded = st.file_uploader(
        "Upload images or SVG drawings",
        accept_multiple_files=True,
        key=f"uploader-{st.session_state['upload_key']}",
    )

    # Step 2: options
    if uploaded and "batch_id" not in st.session_state:
        st.subheader("2. Choose a conversion")
        media_types = [f.type or "application/octet-stream" for f in uploaded]
        options = _fetch_options(media_types).get("options", [])
        if not options:
            st.warning("No conversion is available for every selected file.")
        else:
            labels = {str(o["key"]): str(o["label"]) for o in options}
            conversion_type = st.selectbox(
                "Conversion type", list(labels), format_func=lambda k: labels[k]
            )
            scale = 1.0
            if _fetch_options(media_types, conversion_type).get("scale_applies"):
                scale = st.slider("Output scale", min_value=0.5, max_value=64.0, value=1.0, step=0.5)
            if st.button("Start Conversion", type="primary"):
                with st.spinner("Uploading files..."):
                    batch_id = _start_batch(uploaded, conversion_type, scale)
                if batch_id:
                    st.session_state["batch_id"] = batch_id
                    st.rerun()

    # Step 3: progress
    if "batch_id" in st.session_state:
        batch_id = st.session_state["batch_id"]
        st.subheader("3. Converting files")
        slot = st.empty()
        while True:
            data = _get(f"/batches/{batch_id}")
            if not isinstance(data, dict):
                break
            st.session_state["batch"] = data
            _render_jobs(slot, list(data.get("jobs", [])))
            if data.get("state") not in ("queued", "running"):
                break
            time.sleep(POLL_INTERVAL_SEC)

        batch = st.session_state.get("batch") or {}
        for job in batch.get("jobs", []):
            if job.get("status") != "completed":
                continue
            results = st.session_state.setdefault("results", {})
            index = int(job["index"])
            if index not in results:
                content = _download_result(batch_id, index)
                if content is not None:
                    results[index] = content
            if index in results:
                st.download_button(
                    label=f"Download {job.get('output_name')}",
                    data=results[index],
                    file_name=str(job.get("output_name")),
                    mime=str(job.get("output_media_type") or "application/octet-stream"),
                    key=f"download-{index}",
                )

    if err := st.session_state.get("error"):
        st.error(err)


if __name__ == "__main__":
    main()
