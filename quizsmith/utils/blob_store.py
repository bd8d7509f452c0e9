"""
Blob storage for uploaded source documents.

Documents reference their bytes by `storage_path`; the pipeline only ever
downloads. Two backends:

- LocalBlobStore: files under BLOB_STORE_ROOT (development default)
- S3BlobStore: S3 or any S3-compatible service such as Cloudflare R2
"""

import logging
import os
from pathlib import Path
from typing import Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from quizsmith.exceptions import StorageError

logger = logging.getLogger(__name__)

BLOB_STORE_BACKEND = os.getenv("BLOB_STORE_BACKEND", "local")
BLOB_STORE_ROOT = os.getenv("BLOB_STORE_ROOT", "./storage")

# S3/R2 Configuration
AWS_ACCESS_KEY_ID = os.getenv("AWS_ACCESS_KEY_ID")
AWS_SECRET_ACCESS_KEY = os.getenv("AWS_SECRET_ACCESS_KEY")
AWS_S3_BUCKET = os.getenv("AWS_S3_BUCKET", "quizsmith-documents")
AWS_S3_ENDPOINT = os.getenv("AWS_S3_ENDPOINT")  # For Cloudflare R2
AWS_REGION = os.getenv("AWS_REGION", "us-east-1")


class BlobStore:
    """Download/upload by storage path."""

    def download(self, path: str) -> bytes:
        raise NotImplementedError

    def upload(self, path: str, data: bytes, content_type: Optional[str] = None) -> None:
        raise NotImplementedError


class LocalBlobStore(BlobStore):
    def __init__(self, root: str = BLOB_STORE_ROOT):
        self.root = Path(root).resolve()

    def _resolve(self, path: str) -> Path:
        target = (self.root / path.lstrip("/")).resolve()
        # Storage paths must stay inside the root
        if self.root != target and self.root not in target.parents:
            raise StorageError("Invalid storage path", detail=path)
        return target

    def download(self, path: str) -> bytes:
        target = self._resolve(path)
        try:
            return target.read_bytes()
        except FileNotFoundError as e:
            raise StorageError("Source document not found in storage", detail=path) from e
        except OSError as e:
            raise StorageError("Could not read source document", detail=str(e)) from e

    def upload(self, path: str, data: bytes, content_type: Optional[str] = None) -> None:
        target = self._resolve(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)


class S3BlobStore(BlobStore):
    def __init__(self, bucket: str = AWS_S3_BUCKET, client=None):
        self.bucket = bucket
        self._client = client

    @property
    def client(self):
        if self._client is None:
            config = Config(
                signature_version='s3v4',
                retries={'max_attempts': 3},
                connect_timeout=10,
                read_timeout=60,
            )

            client_kwargs = {
                'aws_access_key_id': AWS_ACCESS_KEY_ID,
                'aws_secret_access_key': AWS_SECRET_ACCESS_KEY,
                'region_name': AWS_REGION,
                'config': config,
            }

            # Support Cloudflare R2 or other S3-compatible storage
            if AWS_S3_ENDPOINT:
                client_kwargs['endpoint_url'] = AWS_S3_ENDPOINT

            self._client = boto3.client('s3', **client_kwargs)
        return self._client

    def download(self, path: str) -> bytes:
        key = path.lstrip("/")
        try:
            response = self.client.get_object(Bucket=self.bucket, Key=key)
            return response['Body'].read()
        except ClientError as e:
            code = e.response.get('Error', {}).get('Code', '')
            if code in ('NoSuchKey', '404', 'NotFound'):
                raise StorageError("Source document not found in storage", detail=f"s3://{self.bucket}/{key}") from e
            logger.error("S3 download failed for s3://%s/%s: %s", self.bucket, key, e)
            raise StorageError("Could not fetch source document", detail=str(e)) from e
        except BotoCoreError as e:
            logger.error("S3 download failed for s3://%s/%s: %s", self.bucket, key, e)
            raise StorageError("Could not fetch source document", detail=str(e)) from e

    def upload(self, path: str, data: bytes, content_type: Optional[str] = None) -> None:
        extra = {'ContentType': content_type} if content_type else {}
        try:
            self.client.put_object(Bucket=self.bucket, Key=path.lstrip("/"), Body=data, **extra)
        except (ClientError, BotoCoreError) as e:
            raise StorageError("Could not store document", detail=str(e)) from e


def get_blob_store() -> BlobStore:
    """Blob store for the configured backend."""
    if BLOB_STORE_BACKEND == "s3":
        return S3BlobStore()
    return LocalBlobStore()
