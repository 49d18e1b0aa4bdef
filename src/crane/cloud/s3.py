"""S3 log archive for captured build output."""

from __future__ import annotations

import logging
from urllib.parse import quote

from crane.errors import StorageError

logger = logging.getLogger(__name__)

STDOUT_NAME = "stdout.txt"
STDERR_NAME = "stderr.txt"


class LogArchive:
    """Writes build logs under ``{bucket}/{key_prefix}/{key}``.

    ``key_prefix`` is ``{branch}/{context}`` so several watched configurations
    can share a bucket. Objects are addressed by deterministic URLs that can
    be computed without I/O.
    """

    def __init__(self, region: str, bucket: str, key_prefix: str, client=None) -> None:
        self.region = region
        self.bucket = bucket
        self.key_prefix = key_prefix.strip("/")
        self._client = client

    @property
    def client(self):
        if self._client is None:
            import boto3

            self._client = boto3.client("s3", region_name=self.region)
        return self._client

    def object_key(self, key: str) -> str:
        return f"{self.key_prefix}/{key}"

    def url_for_key(self, key: str) -> str:
        path = quote(self.object_key(key), safe="/")
        return f"https://s3-{self.region}.amazonaws.com/{self.bucket}/{path}"

    def url_for(self, sha: str) -> str:
        """Canonical URL of the stdout log for ``sha``; the link posted on statuses."""
        return self.url_for_key(f"{sha}/{STDOUT_NAME}")

    def put(self, key: str, content: bytes) -> str:
        """Upload ``content`` under ``key`` and return its URL."""
        from botocore.exceptions import BotoCoreError, ClientError

        object_key = self.object_key(key)
        try:
            self.client.put_object(
                Bucket=self.bucket,
                Key=object_key,
                Body=content,
                ContentType="text/plain; charset=utf-8",
            )
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"upload of s3://{self.bucket}/{object_key} failed: {exc}") from exc
        logger.info("uploaded s3://%s/%s (%d bytes)", self.bucket, object_key, len(content))
        return self.url_for_key(key)

    def put_build_logs(self, sha: str, stdout: bytes, stderr: bytes) -> str:
        """Archive both streams of one build; returns the stdout URL."""
        stdout_url = self.put(f"{sha}/{STDOUT_NAME}", stdout)
        self.put(f"{sha}/{STDERR_NAME}", stderr)
        return stdout_url
