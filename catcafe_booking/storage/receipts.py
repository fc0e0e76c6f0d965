import logging
import os
import time

import httpx
from dotenv import load_dotenv

from catcafe_booking.exceptions import ReceiptValidationError, StorageError

load_dotenv()
SUPABASE_URL = os.getenv("SUPABASE_URL", "")
SUPABASE_SERVICE_KEY = os.getenv("SUPABASE_SERVICE_KEY", "")
RECEIPT_URL_TTL_SECONDS = int(os.getenv("RECEIPT_URL_TTL_SECONDS", "3600"))

BUCKET_NAME = "booking-receipts"
MAX_FILE_SIZE = 5 * 1024 * 1024
ALLOWED_TYPES = ("image/jpeg", "image/jpg", "image/png", "application/pdf")
EXTENSIONS = {"image/jpeg": "jpg", "image/jpg": "jpg", "image/png": "png", "application/pdf": "pdf"}
FILE_EXTENSIONS = ("jpg", "jpeg", "png", "pdf")

logger = logging.getLogger(__name__)


def validate_receipt(content: bytes, content_type: str | None) -> None:
    if not content:
        raise ReceiptValidationError("No file provided.")
    if len(content) > MAX_FILE_SIZE:
        raise ReceiptValidationError("File size exceeds 5MB limit.")
    if content_type not in ALLOWED_TYPES:
        raise ReceiptValidationError("File type not allowed. Please upload JPG, PNG, or PDF.")


def receipt_path(booking_id, filename: str | None, content_type: str) -> str:
    """`{booking_id}/{unix millis}.{ext}`; a filename extension is kept only when it is an allowed one."""
    ext = None
    if filename and "." in filename:
        ext = filename.rsplit(".", 1)[1].lower()
    if ext not in FILE_EXTENSIONS:
        ext = None
    return f"{booking_id}/{int(time.time() * 1000)}.{ext or EXTENSIONS[content_type]}"


def extract_path(stored: str | None) -> str | None:
    """Reduce a legacy full public URL to the path inside the bucket."""
    if not stored:
        return None
    if not stored.startswith("http"):
        return stored
    marker = f"/{BUCKET_NAME}/"
    if marker not in stored:
        return None
    return stored.split(marker, 1)[1].split("?", 1)[0]


class ReceiptStorage:
    """Client for the object storage REST API holding payment receipts."""

    def __init__(self, base_url: str = SUPABASE_URL, service_key: str = SUPABASE_SERVICE_KEY,
                 transport: httpx.AsyncBaseTransport | None = None):
        self.base_url = base_url.rstrip("/")
        self.service_key = service_key
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=f"{self.base_url}/storage/v1",
            headers={"Authorization": f"Bearer {self.service_key}", "apikey": self.service_key},
            timeout=5.0,
            transport=self.transport,
        )

    async def upload(self, booking_id, content: bytes, content_type: str | None,
                     filename: str | None = None) -> str:
        validate_receipt(content, content_type)
        path = receipt_path(booking_id, filename, content_type)
        try:
            async with self._client() as client:
                response = await client.post(
                    f"/object/{BUCKET_NAME}/{path}",
                    content=content,
                    headers={"Content-Type": content_type, "Cache-Control": "3600", "x-upsert": "false"},
                )
                response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error("Receipt upload for booking %s failed: %s", booking_id, e)
            raise StorageError(f"Receipt upload failed: {e}") from e

        logger.info("Stored receipt %s", path)
        return path

    async def signed_url(self, stored: str, expires_in: int = RECEIPT_URL_TTL_SECONDS) -> str:
        path = extract_path(stored)
        if path is None:
            raise StorageError("Could not resolve the receipt path.")
        try:
            async with self._client() as client:
                response = await client.post(
                    f"/object/sign/{BUCKET_NAME}/{path}",
                    json={"expiresIn": expires_in},
                )
                response.raise_for_status()
                signed = response.json().get("signedURL") or response.json().get("signedUrl")
        except httpx.HTTPError as e:
            raise StorageError(f"Could not sign receipt URL: {e}") from e

        if not signed:
            raise StorageError("Storage returned no signed URL.")
        if signed.startswith("http"):
            return signed
        return f"{self.base_url}/storage/v1{signed}"

    async def delete(self, stored: str) -> None:
        path = extract_path(stored)
        if path is None:
            return
        try:
            async with self._client() as client:
                response = await client.request("DELETE", f"/object/{BUCKET_NAME}", json={"prefixes": [path]})
                response.raise_for_status()
        except httpx.HTTPError as e:
            raise StorageError(f"Could not delete receipt: {e}") from e


def get_receipt_storage() -> ReceiptStorage:
    return ReceiptStorage()
