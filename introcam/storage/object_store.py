"""Object storage for uploaded recordings (Supabase Storage REST API)."""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, List, Optional
from urllib.parse import parse_qs, quote, urlparse

import aiohttp

from ..errors import StorageError

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]


@dataclass
class SignedUpload:
    """A signed, time-limited write destination."""
    signed_url: str
    path: str
    token: Optional[str] = None


class ObjectStorage(ABC):
    """Storage collaborator used by the uploader."""

    @abstractmethod
    async def create_signed_upload_url(self, object_name: str) -> SignedUpload:
        """Request a signed write destination for ``object_name``."""

    @abstractmethod
    async def upload_to_signed_url(
        self,
        signed: SignedUpload,
        data: bytes,
        content_type: str,
        on_progress: Optional[ProgressCallback] = None,
    ) -> None:
        """Stream ``data`` to the signed destination, reporting bytes sent."""

    @abstractmethod
    def get_public_url(self, object_name: str) -> str:
        """Return the public URL of a stored object."""

    @abstractmethod
    async def remove(self, object_names: List[str]) -> None:
        """Delete stored objects."""


class SupabaseStorage(ObjectStorage):
    """Supabase Storage bucket accessed over its REST API."""

    def __init__(self, url: str, service_key: str, bucket: str = "video", chunk_size: int = 64 * 1024):
        """Initialize storage client.

        Args:
            url: Supabase project URL
            service_key: service role key, sent as ``apikey`` and bearer token
            bucket: bucket holding the recordings
            chunk_size: bytes per chunk when streaming an upload
        """
        self.url = url.rstrip("/")
        self.service_key = service_key
        self.bucket = bucket
        self.chunk_size = chunk_size
        logger.info(f"SupabaseStorage initialized for bucket: {bucket}")

    def _headers(self) -> dict:
        return {
            "apikey": self.service_key,
            "Authorization": f"Bearer {self.service_key}",
        }

    async def create_signed_upload_url(self, object_name: str) -> SignedUpload:
        endpoint = f"{self.url}/storage/v1/object/upload/sign/{self.bucket}/{quote(object_name)}"
        async with aiohttp.ClientSession() as session:
            async with session.post(endpoint, headers=self._headers()) as response:
                if response.status != 200:
                    error_text = await response.text()
                    raise StorageError(
                        f"Signed upload URL request failed: {response.status} - {error_text}",
                        status=response.status,
                    )
                result = await response.json()

        signed_url = f"{self.url}/storage/v1{result['url']}"
        token = parse_qs(urlparse(signed_url).query).get("token", [None])[0]
        logger.debug(f"Signed upload URL issued for {object_name}")
        return SignedUpload(signed_url=signed_url, path=object_name, token=token)

    async def upload_to_signed_url(
        self,
        signed: SignedUpload,
        data: bytes,
        content_type: str,
        on_progress: Optional[ProgressCallback] = None,
    ) -> None:
        total = len(data)

        async def body():
            sent = 0
            for offset in range(0, total, self.chunk_size):
                piece = data[offset:offset + self.chunk_size]
                yield piece
                sent += len(piece)
                if on_progress:
                    on_progress(sent, total)

        headers = {
            "Content-Type": content_type,
            "Content-Length": str(total),
        }
        async with aiohttp.ClientSession() as session:
            async with session.put(signed.signed_url, data=body(), headers=headers) as response:
                if not 200 <= response.status < 300:
                    error_text = await response.text()
                    raise StorageError(
                        f"Upload failed with status {response.status} - {error_text}",
                        status=response.status,
                    )
        logger.info(f"Uploaded {total} bytes to {signed.path}")

    def get_public_url(self, object_name: str) -> str:
        return f"{self.url}/storage/v1/object/public/{self.bucket}/{quote(object_name)}"

    async def remove(self, object_names: List[str]) -> None:
        endpoint = f"{self.url}/storage/v1/object/{self.bucket}"
        async with aiohttp.ClientSession() as session:
            async with session.delete(endpoint, headers=self._headers(), json={"prefixes": object_names}) as response:
                if response.status != 200:
                    error_text = await response.text()
                    raise StorageError(
                        f"Remove failed: {response.status} - {error_text}",
                        status=response.status,
                    )
        logger.info(f"Removed {len(object_names)} object(s) from {self.bucket}")
