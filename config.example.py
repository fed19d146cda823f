# config.example.py

"""
Documentation-only module (safe to commit).

The real configuration is loaded from environment variables (optionally via a local .env file).
Do NOT commit real credentials. AWS credentials are resolved by boto3 itself
(env vars, ~/.aws, instance profile); they are not read by this app.

This file exists to make the repo self-documenting even without opening .env.example.
"""

ENV_VARS = {
    # App / logging
    "UPQ_APP_NAME": "App display name (default: upload-queue).",
    "UPQ_LOG_LEVEL": "Console logging level (default: INFO).",
    "UPQ_CONSOLE_ENABLED": "Run the slash-command console (true) or ping headless (false).",
    # Paths (gitignored)
    "UPQ_DATA_DIR": "Local data directory (default: .local/upload-queue).",
    "UPQ_QUEUE_DB_PATH": "UploadStore SQLite path (default: <data_dir>/uploads.sqlite3).",
    # Queue tuning
    "UPQ_TTL_SECONDS": "Seconds an upload may stay UPLOADING before it is reclaimed (default: 600).",
    "UPQ_RETRY_DELAY_SECONDS": "Cool-down before the next ping after a failed upload (default: 60).",
    "UPQ_DRAIN_DELAY_SECONDS": "Delay before the next ping after a successful upload (default: 0.001).",
    "UPQ_PING_INTERVAL_SECONDS": "Headless mode: seconds between external pings (default: 30).",
    # Transport
    "UPQ_UPLOADER": "local | s3 (default: s3 when UPQ_S3_BUCKET is set, else local).",
    "UPQ_LOCAL_UPLOAD_DIR": "Target directory for the local uploader (default: <data_dir>/uploaded).",
    "UPQ_S3_BUCKET": "Destination bucket for the S3 uploader.",
    "UPQ_S3_REGION": "Bucket region (optional; boto3 default otherwise).",
    "UPQ_S3_PREFIX": "Key prefix inside the bucket (optional).",
}
