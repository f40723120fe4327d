"""
Object storage for issued artifacts.

Two operations, matching how S3 presigned uploads work:

    presigned_put_url(bucket, key, content_type) -> url
    upload(url, content, content_type)

Presigning is local computation (boto3 signs the URL with the configured
credentials, no network call). The upload is an HTTP PUT through the
shared httpx client.

Development fallback: when no AWS credentials are available in
development mode, URLs take the form ``mock://localhost/s3/<key>`` and
uploads are written below the local artifact directory instead.
"""

import logging
from pathlib import Path
from typing import Optional

import boto3
import httpx
from botocore.exceptions import BotoCoreError, ClientError

logger = logging.getLogger("endorsement.storage")


PRESIGN_EXPIRY_SECONDS = 3600
MOCK_URL_PREFIX = "mock://localhost/s3/"
DEFAULT_KEY_PREFIX = "endorsements"

ARTIFACT_FILENAMES = {
    "json": "claim.obv3.json",
    "pdf": "claim.pdf",
}


class StorageError(RuntimeError):
    """Raised when an artifact cannot be presigned or uploaded."""


def artifact_key(prefix: Optional[str], claim_id: str, artifact_type: str) -> str:
    """``<prefix>/<claim_id>/<filename>`` for ``json`` or ``pdf`` artifacts."""
    try:
        filename = ARTIFACT_FILENAMES[artifact_type]
    except KeyError:
        raise ValueError(f"unknown artifact type: {artifact_type}") from None
    return f"{prefix or DEFAULT_KEY_PREFIX}/{claim_id}/{filename}"


class ObjectStorage:
    def __init__(
        self,
        *,
        http_client: httpx.AsyncClient,
        region: str,
        local_root: Path,
        allow_local_fallback: bool = False,
        s3_client=None,
    ):
        self._http = http_client
        self._region = region
        self._local_root = local_root
        self._s3 = s3_client
        self._use_local = False

        if self._s3 is None:
            session = boto3.Session()
            if session.get_credentials() is None and allow_local_fallback:
                logger.warning(
                    "storage_local_fallback_enabled",
                    extra={"local_root": str(local_root)},
                )
                self._use_local = True
            else:
                self._s3 = session.client("s3", region_name=region)

    @property
    def is_local(self) -> bool:
        return self._use_local

    def presigned_put_url(
        self,
        bucket: str,
        key: str,
        content_type: str,
        *,
        expires_in: int = PRESIGN_EXPIRY_SECONDS,
    ) -> str:
        if self._use_local:
            return f"{MOCK_URL_PREFIX}{key}"

        try:
            return self._s3.generate_presigned_url(
                "put_object",
                Params={
                    "Bucket": bucket,
                    "Key": key,
                    "ContentType": content_type,
                },
                ExpiresIn=expires_in,
            )
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"cannot presign upload for {key}: {exc}") from exc

    async def upload(self, url: str, content: bytes, content_type: str) -> None:
        if url.startswith(MOCK_URL_PREFIX):
            self._write_local(url[len(MOCK_URL_PREFIX):], content)
            return

        try:
            response = await self._http.put(
                url,
                content=content,
                headers={"Content-Type": content_type},
            )
        except httpx.HTTPError as exc:
            raise StorageError(f"upload failed: {exc}") from exc

        if not response.is_success:
            raise StorageError(
                f"upload rejected: HTTP {response.status_code} {response.reason_phrase}"
            )

    async def put(
        self,
        bucket: str,
        key: str,
        content: bytes,
        content_type: str,
    ) -> str:
        """Presign and upload in one step. Returns the presigned URL."""
        url = self.presigned_put_url(bucket, key, content_type)
        await self.upload(url, content, content_type)

        logger.info(
            "artifact_stored",
            extra={"bucket": bucket, "key": key, "size": len(content)},
        )
        return url

    def _write_local(self, key: str, content: bytes) -> None:
        root = self._local_root.resolve()
        target = (root / key).resolve()
        if not target.is_relative_to(root):
            raise StorageError(f"refusing to write outside artifact root: {key}")

        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(content)
