#!/usr/bin/env python3
# =============================================================================
# File: scripts/init_minio.py
# Description: Create the attachment bucket and make objects public-read
# =============================================================================
"""
Initialize the MinIO bucket that holds message attachments.

Run after starting MinIO:
    docker run -d --name bidroom-minio -p 9000:9000 -p 9001:9001 \
        -e MINIO_ROOT_USER=minioadmin -e MINIO_ROOT_PASSWORD=minioadmin \
        -v minio_data:/data quay.io/minio/minio server /data --console-address ":9001"

Then run (reads STORAGE_* settings from the environment or .env):
    python scripts/init_minio.py
"""

import json

import boto3
from botocore.exceptions import ClientError

from bidroom.config.messaging_config import get_messaging_config
from bidroom.config.storage_config import get_storage_config


def public_read_policy(bucket_name: str, prefix: str) -> dict:
    return {
        "Version": "2012-10-17",
        "Statement": [
            {
                "Effect": "Allow",
                "Principal": "*",
                "Action": ["s3:GetObject"],
                "Resource": [f"arn:aws:s3:::{bucket_name}/{prefix}/*"],
            }
        ],
    }


def main(prefix: str = None):
    config = get_storage_config()
    prefix = prefix or get_messaging_config().attachment_prefix
    bucket_name = config.bucket_name

    print(f"Connecting to MinIO at {config.endpoint_url}...")
    s3 = boto3.client(
        "s3",
        endpoint_url=config.endpoint_url,
        aws_access_key_id=config.get_access_key(),
        aws_secret_access_key=config.get_secret_key(),
        region_name=config.region,
    )

    try:
        s3.head_bucket(Bucket=bucket_name)
        print(f"Bucket '{bucket_name}' already exists")
    except ClientError as e:
        if e.response["Error"]["Code"] != "404":
            raise
        print(f"Creating bucket '{bucket_name}'...")
        s3.create_bucket(Bucket=bucket_name)

    # Attachment URLs go to the browser unsigned
    s3.put_bucket_policy(Bucket=bucket_name, Policy=json.dumps(public_read_policy(bucket_name, prefix)))
    print(f"Public read enabled for {bucket_name}/{prefix}/*")
    print(f"  Public URL: {config.public_url}")


if __name__ == "__main__":
    main()
