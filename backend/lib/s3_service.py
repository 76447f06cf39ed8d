"""
=============================================================================
S3 SERVICE - Export Backups on Amazon S3
=============================================================================
Keeps dated copies of the export document so a bad import or a damaged
spreadsheet can be rolled back.

Example:
    Bucket: meter-tracker-backups
    Key: backups/20240229T183000Z_spotreba_2024-02-29.json
=============================================================================
"""

import logging
import os
from datetime import datetime, timezone
from typing import Dict, List, Optional

import boto3
from botocore.exceptions import ClientError

logger = logging.getLogger(__name__)

BACKUP_PREFIX = 'backups/'


class S3Service:
    """
    Upload, list and download export backups.

    Usage:
        s3 = S3Service()
        s3.create_bucket_if_not_exists()
        key = s3.upload_backup(b"[...]", "spotreba_2024-02-29.json")
    """

    def __init__(self, bucket_name: str = None):
        """
        Args:
            bucket_name: Optional custom bucket name. If not provided,
                        uses S3_BUCKET_NAME from environment or default.
        """
        self.bucket_name = bucket_name or os.getenv('S3_BUCKET_NAME', 'meter-tracker-backups')
        self.region = os.getenv('AWS_REGION', 'us-east-1')

        session_token = os.getenv('AWS_SESSION_TOKEN')

        self.s3_client = boto3.client(
            's3',
            region_name=self.region,
            aws_access_key_id=os.getenv('AWS_ACCESS_KEY_ID'),
            aws_secret_access_key=os.getenv('AWS_SECRET_ACCESS_KEY'),
            aws_session_token=session_token if session_token else None
        )

    def create_bucket_if_not_exists(self) -> bool:
        """
        Create the S3 bucket if it doesn't already exist.

        Returns:
            bool: True if bucket exists or was created successfully

        Note:
            Creating a bucket in us-east-1 uses different syntax than other regions.
        """
        try:
            self.s3_client.head_bucket(Bucket=self.bucket_name)
            return True

        except ClientError as e:
            error_code = e.response['Error']['Code']

            if error_code != '404':
                logger.error("Error checking bucket: %s", e)
                return False

        try:
            if self.region == 'us-east-1':
                self.s3_client.create_bucket(Bucket=self.bucket_name)
            else:
                self.s3_client.create_bucket(
                    Bucket=self.bucket_name,
                    CreateBucketConfiguration={'LocationConstraint': self.region}
                )
            logger.info("Created bucket: %s", self.bucket_name)
            return True

        except ClientError as create_error:
            logger.error("Failed to create bucket: %s", create_error)
            return False

    def upload_backup(self, content: bytes, filename: str,
                      content_type: str = 'application/json') -> Optional[str]:
        """
        Store a backup under a timestamp prefix.

        Args:
            content: The export document as bytes
            filename: Download name of the export (e.g., "spotreba_2024-02-29.json")
            content_type: MIME type of the document

        Returns:
            str: The S3 key of the backup, or None if failed
        """
        timestamp = datetime.now(timezone.utc).strftime('%Y%m%dT%H%M%SZ')
        s3_key = f"{BACKUP_PREFIX}{timestamp}_{filename}"

        try:
            self.s3_client.put_object(
                Bucket=self.bucket_name,
                Key=s3_key,
                Body=content,
                ContentType=content_type
            )
            logger.info("Uploaded backup %s", s3_key)
            return s3_key

        except ClientError as e:
            logger.error("Failed to upload backup to S3: %s", e)
            return None

    def download_backup(self, s3_key: str) -> Optional[bytes]:
        """
        Returns:
            bytes: The backup content, or None if failed
        """
        try:
            response = self.s3_client.get_object(
                Bucket=self.bucket_name,
                Key=s3_key
            )
            return response['Body'].read()

        except ClientError as e:
            logger.error("Failed to download %s from S3: %s", s3_key, e)
            return None

    def list_backups(self) -> List[Dict]:
        """
        List stored backups, newest first.

        Returns:
            list: Dictionaries with key, size and last_modified
        """
        try:
            paginator = self.s3_client.get_paginator('list_objects_v2')
            files = []
            for page in paginator.paginate(Bucket=self.bucket_name, Prefix=BACKUP_PREFIX):
                for obj in page.get('Contents', []):
                    files.append({
                        'key': obj['Key'],
                        'size': obj['Size'],
                        'last_modified': obj['LastModified'].isoformat()
                    })
            files.sort(key=lambda f: f['key'], reverse=True)
            return files

        except ClientError as e:
            logger.error("Failed to list backups: %s", e)
            return []
