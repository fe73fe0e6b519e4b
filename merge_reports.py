import argparse
import io
import os
import re

import pandas as pd
from google.cloud import storage

MERGED_REPORTS = "history/ALL_REPORTS.csv"
REPORT_COLUMNS = ["name", "status", "report"]

# Object names written by the function: <YYYY-MM-DDTHH:MM:SS>.csv at the bucket root
REPORT_NAME_RE = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.csv$")


def list_report_blobs(bucket_name, prefix=""):
    client = storage.Client()
    blobs = client.list_blobs(bucket_name, prefix=prefix)

    # Report names are UTC timestamps, so name order is chronological
    reports = [b for b in blobs if REPORT_NAME_RE.match(b.name[len(prefix):])]
    return sorted(reports, key=lambda b: b.name)


def load_report(blob):
    content = blob.download_as_text()
    df = pd.read_csv(io.StringIO(content), dtype=str, keep_default_na=False)
    df["report"] = os.path.basename(blob.name)[: -len(".csv")]
    return df[REPORT_COLUMNS]


def merge_reports(bucket_name, prefix=""):
    dfs = []
    for blob in list_report_blobs(bucket_name, prefix):
        df = load_report(blob)
        print(f"📄 {blob.name}: {len(df)} running instances")
        dfs.append(df)
    if dfs:
        return pd.concat(dfs, ignore_index=True)
    return pd.DataFrame(columns=REPORT_COLUMNS)


def upload_file_to_bucket(bucket_name, local_path, destination_blob):
    client = storage.Client()
    bucket = client.bucket(bucket_name)
    blob = bucket.blob(destination_blob)
    blob.upload_from_filename(local_path, content_type="text/csv")
    print(f"✅ Uploaded: {destination_blob}")


def main(bucket_name, output=MERGED_REPORTS):
    print(f"📥 Reading reports from gs://{bucket_name}...")
    history_df = merge_reports(bucket_name)

    if history_df.empty:
        print("⚠️ No report rows found, nothing uploaded.")
        return history_df

    merged_path = f"/tmp/{os.path.basename(output)}"
    history_df.to_csv(merged_path, index=False)
    upload_file_to_bucket(bucket_name, merged_path, output)
    return history_df


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Merge every instance report in the bucket into one CSV")
    parser.add_argument("--bucket", default=os.environ.get("REPORTS_BUCKET"), help="Reports bucket (default: $REPORTS_BUCKET)")
    parser.add_argument("--output", default=MERGED_REPORTS, help=f"Destination object (default: '{MERGED_REPORTS}')")

    args = parser.parse_args()
    if not args.bucket:
        parser.error("--bucket is required when REPORTS_BUCKET is not set")

    main(args.bucket, args.output)
