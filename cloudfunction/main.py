# main.py
import argparse
import os
from datetime import datetime, timezone

import functions_framework
from dotenv import load_dotenv
from google.cloud import storage
from googleapiclient import discovery

# Local runs read PROJECT_ID, ZONE and REPORTS_BUCKET from a .env file
load_dotenv()

RUNNING_FILTER = "status=RUNNING"
CSV_HEADER = "name,status"
TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S"


def load_config(require_bucket=True):
    config = {
        "project_id": os.environ.get("PROJECT_ID"),
        "zone": os.environ.get("ZONE"),
    }
    if require_bucket:
        config["reports_bucket"] = os.environ.get("REPORTS_BUCKET")
    for key, value in config.items():
        if not value:
            raise RuntimeError(f"Missing environment variable: {key.upper()}")
    return config


def get_instances(project_id, zone):
    """
    Returns a list of {"name", "status"} dicts for the RUNNING instances in the zone.
    """
    compute = discovery.build("compute", "v1")
    request = compute.instances().list(project=project_id, zone=zone, filter=RUNNING_FILTER)

    instances = []
    while request is not None:
        response = request.execute()
        for instance in response.get("items", []):
            instances.append({"name": instance.get("name"), "status": instance.get("status")})

        request = compute.instances().list_next(previous_request=request, previous_response=response)

    print(f"🖥️  Found {len(instances)} running instances in {project_id}/{zone}")
    return instances


def build_csv(instances):
    lines = [CSV_HEADER]
    for instance in instances:
        lines.append(f"{instance.get('name') or ''},{instance.get('status') or ''}")
    return "\n".join(lines)


def report_name(now=None):
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        # Naive timestamps are taken as UTC
        now = now.replace(tzinfo=timezone.utc)
    return f"{now.astimezone(timezone.utc).strftime(TIMESTAMP_FORMAT)}.csv"


def get_reports_bucket(storage_client, bucket_name):
    # Create the bucket and if it already exists, reuse it
    try:
        bucket = storage_client.create_bucket(bucket_name)
        print(f"🪣 Created bucket: {bucket_name}")
    except Exception as e:
        print(f"Using existing bucket {bucket_name}: {e}")
        bucket = storage_client.bucket(bucket_name)
    return bucket


def save_instances_csv(instances, project_id, bucket_name):
    storage_client = storage.Client(project=project_id)
    bucket = get_reports_bucket(storage_client, bucket_name)

    blob_name = report_name()
    blob = bucket.blob(blob_name)
    blob.upload_from_string(build_csv(instances), content_type="text/csv")
    print(f"✅ Uploaded: gs://{bucket_name}/{blob_name}")
    return blob_name


@functions_framework.http
def list_instances(request):
    config = load_config()
    instances = get_instances(config["project_id"], config["zone"])
    save_instances_csv(instances, config["project_id"], config["reports_bucket"])
    return "OK"


def main(argv=None):
    parser = argparse.ArgumentParser(description="List running instances and save them as a CSV report")
    parser.add_argument("--project", help="Project ID (default: $PROJECT_ID)")
    parser.add_argument("--zone", help="Compute zone (default: $ZONE)")
    parser.add_argument("--bucket", help="Reports bucket (default: $REPORTS_BUCKET)")
    parser.add_argument("--output", help="Write the CSV to this path instead of the bucket")

    args = parser.parse_args(argv)

    for name, value in (("PROJECT_ID", args.project), ("ZONE", args.zone), ("REPORTS_BUCKET", args.bucket)):
        if value:
            os.environ[name] = value

    if args.output:
        config = load_config(require_bucket=False)
        csv_text = build_csv(get_instances(config["project_id"], config["zone"]))
        with open(args.output, "w", encoding="utf-8") as f:
            f.write(csv_text)
        print(f"✅ Saved report to {args.output}")
        return args.output

    config = load_config()
    instances = get_instances(config["project_id"], config["zone"])
    return save_instances_csv(instances, config["project_id"], config["reports_bucket"])


if __name__ == "__main__":
    main()
