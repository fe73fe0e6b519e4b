import io
import json
import re

import pandas as pd
import requests
import streamlit as st
from google.cloud import storage
from google.oauth2 import service_account

st.set_page_config(page_title="Running Instances Reports")
st.title("🖥️ Running Instances Reports")

REPORT_NAME_RE = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.csv$")

# --- GCS Client Setup ---
if st.secrets.get("GCP_CREDENTIALS"):
    credentials_info = json.loads(st.secrets["GCP_CREDENTIALS"])
    credentials = service_account.Credentials.from_service_account_info(credentials_info)
    client = storage.Client(credentials=credentials, project=credentials_info.get("project_id"))
else:
    client = storage.Client()

bucket_name = st.secrets["BUCKET_NAME"]
bucket = client.bucket(bucket_name)
function_url = st.secrets.get("FUNCTION_URL")

# --- Trigger a run ---
if function_url and st.button("Run now", key="run_now"):
    try:
        response = requests.get(function_url, timeout=120)
        response.raise_for_status()
        st.success(f"✅ Function responded: {response.text}")
    except requests.exceptions.RequestException as e:
        st.error(f"❌ Error calling the function: {e}")
        if getattr(e, "response", None) is not None:
            st.code(e.response.text)

# --- Reports ---
st.header("📊 Reports")
report_names = sorted(
    (b.name for b in bucket.list_blobs() if REPORT_NAME_RE.match(b.name)),
    reverse=True,
)

if not report_names:
    st.info("No reports yet.")
else:
    selected = st.selectbox("Report (UTC)", report_names)
    content = bucket.blob(selected).download_as_text()
    report_df = pd.read_csv(io.StringIO(content), dtype=str, keep_default_na=False)

    st.metric("Running instances", len(report_df))
    st.dataframe(report_df, width="stretch")
    st.download_button(f"⬇️ Download {selected}", content, file_name=selected, mime="text/csv")

st.markdown("---")
st.caption(f"Bucket: gs://{bucket_name}")
