"""Hand-off of finished recordings to the submission sink."""

import time
import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional

import aiohttp

from ..capture.formats import container_type, file_extension
from ..errors import UploadError
from ..models.recording import FinalAsset
from ..storage.file_manager import FileManager

logger = logging.getLogger(__name__)


@dataclass
class SubmissionRequest:
    """What the sink receives for one recording."""
    data: bytes
    mime_type: str
    owner_id: str
    timestamp_seed: int

    @property
    def object_path(self) -> str:
        return f"{self.owner_id}/{self.timestamp_seed}.{file_extension(self.mime_type)}"


@dataclass
class SubmissionReceipt:
    """Durable reference returned by the sink."""
    public_reference: str
    object_path: str
    size_bytes: int
    attempts: int = 1
    submitted_at: datetime = field(default_factory=datetime.now)


class SubmissionSink(ABC):
    """Destination for finished recordings."""

    @abstractmethod
    def submit(self, request: SubmissionRequest) -> SubmissionReceipt:
        """Store the recording.

        Raises:
            UploadError: the sink rejected the payload or could not be reached
        """
        pass


class HttpSubmissionSink(SubmissionSink):
    """Uploads recordings to an object storage endpoint with an HTTP PUT."""

    def __init__(self,
                 endpoint: str,
                 public_base_url: Optional[str] = None,
                 api_key: Optional[str] = None,
                 timeout_seconds: float = 30.0):
        """Initialize HTTP sink.

        Args:
            endpoint: Base URL objects are PUT under (``<endpoint>/<owner>/<seed>.<ext>``)
            public_base_url: Base URL recordings are publicly served from; defaults to endpoint
            api_key: Bearer token sent with every upload
            timeout_seconds: Total timeout for one upload attempt
        """
        self.endpoint = endpoint.rstrip('/')
        self.public_base_url = (public_base_url or endpoint).rstrip('/')
        self.api_key = api_key
        self.timeout_seconds = timeout_seconds

    def submit(self, request: SubmissionRequest) -> SubmissionReceipt:
        return asyncio.run(self.submit_async(request))

    async def submit_async(self, request: SubmissionRequest) -> SubmissionReceipt:
        url = f"{self.endpoint}/{request.object_path}"
        headers = {"Content-Type": container_type(request.mime_type)}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        logger.info(f"Uploading {len(request.data)} bytes to {url}")
        timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.put(url, data=request.data, headers=headers) as response:
                    if response.status >= 400:
                        body = await response.text()
                        logger.error(f"Upload rejected with HTTP {response.status}: {body[:200]}")
                        raise UploadError()
        except aiohttp.ClientError as e:
            logger.error(f"Upload failed: {e}")
            raise UploadError() from e
        except asyncio.TimeoutError as e:
            logger.error(f"Upload timed out after {self.timeout_seconds}s")
            raise UploadError() from e

        return SubmissionReceipt(
            public_reference=f"{self.public_base_url}/{request.object_path}",
            object_path=request.object_path,
            size_bytes=len(request.data),
        )


class LocalSubmissionSink(SubmissionSink):
    """Stores submissions on disk, for running without an upload endpoint."""

    def __init__(self, file_manager: FileManager):
        self.file_manager = file_manager

    def submit(self, request: SubmissionRequest) -> SubmissionReceipt:
        try:
            path = self.file_manager.save_submission(request.data, request.object_path)
        except (OSError, ValueError) as e:
            logger.error(f"Error storing submission locally: {e}")
            raise UploadError() from e

        return SubmissionReceipt(
            public_reference=path.as_uri(),
            object_path=request.object_path,
            size_bytes=len(request.data),
        )


class SubmissionService:
    """Submits a finished asset, retrying transient sink failures.

    The asset is never touched; a failed submission can be retried as often as needed.
    """

    def __init__(self,
                 sink: SubmissionSink,
                 max_attempts: int = 3,
                 retry_delay_seconds: float = 1.0,
                 sleep: Callable[[float], None] = time.sleep):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.sink = sink
        self.max_attempts = max_attempts
        self.retry_delay_seconds = retry_delay_seconds
        self.sleep = sleep

    def submit(self,
               asset: FinalAsset,
               owner_id: str,
               timestamp_seed: Optional[int] = None) -> SubmissionReceipt:
        """Hand the asset to the sink.

        Raises:
            UploadError: every attempt failed
        """
        if not owner_id:
            raise ValueError("owner_id is required")

        request = SubmissionRequest(
            data=asset.data,
            mime_type=asset.mime_type,
            owner_id=owner_id,
            timestamp_seed=timestamp_seed if timestamp_seed is not None else int(time.time() * 1000),
        )

        last_error: Optional[UploadError] = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                receipt = self.sink.submit(request)
            except UploadError as e:
                last_error = e
                logger.warning(f"Submission attempt {attempt}/{self.max_attempts} failed: {e.message}")
                if attempt < self.max_attempts:
                    self.sleep(self.retry_delay_seconds * attempt)
                continue

            receipt.attempts = attempt
            logger.info(f"Recording submitted as {receipt.public_reference} "
                        f"({receipt.size_bytes} bytes, attempt {attempt})")
            return receipt

        raise last_error
