"""
Uploader implementations.

- local.py: copies files into a local directory (offline/demo mode)
- s3.py: uploads to an S3 bucket via boto3
"""
