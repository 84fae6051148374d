"""
Palette Media Client

Async client for a predictions-style media API (Replicate-compatible):
create a job, then poll it at a fixed interval for a bounded number of
attempts. Job creation and every poll go through the retry executor, and
bodies that cannot be parsed surface as MediaError.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import httpx

from palette.core.config import MediaConfig
from palette.core.constants import MediaJobStatus
from palette.core.env_loader import get_api_key
from palette.core.exceptions import MediaError, MediaJobFailedError, MediaJobTimeoutError
from palette.core.logging_config import get_logger
from palette.core.retry import RetryConfig, retry_async_call

logger = get_logger("llm.media")

TERMINAL_JOB_STATUSES = (
    MediaJobStatus.SUCCEEDED,
    MediaJobStatus.FAILED,
    MediaJobStatus.CANCELED,
)


@dataclass
class MediaRequest:
    """A single media generation request."""
    prompt: str
    model: str
    reference_images: List[str] = field(default_factory=list)
    width: Optional[int] = None
    height: Optional[int] = None
    seed: Optional[int] = None

    def to_input(self) -> Dict:
        params = {"prompt": self.prompt}
        if self.reference_images:
            params["image_input"] = list(self.reference_images)
        if self.width and self.height:
            params["width"] = self.width
            params["height"] = self.height
        if self.seed is not None:
            params["seed"] = self.seed
        return params


@dataclass
class MediaJob:
    """Snapshot of a provider-side job."""
    job_id: str
    status: MediaJobStatus
    output_urls: List[str] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_JOB_STATUSES

    @classmethod
    def from_response(cls, data: Dict) -> 'MediaJob':
        if not isinstance(data, dict) or not data.get("id"):
            raise MediaError("Malformed media job response", {"body": str(data)[:200]})
        output = data.get("output") or []
        if isinstance(output, str):
            output = [output]
        try:
            status = MediaJobStatus(data.get("status", "starting"))
        except ValueError:
            status = MediaJobStatus.PROCESSING
        return cls(
            job_id=data["id"],
            status=status,
            output_urls=list(output),
            error=data.get("error")
        )


def _parse_job(response: httpx.Response) -> MediaJob:
    try:
        data = response.json()
    except ValueError:
        raise MediaError(
            "Media provider returned a non-JSON body",
            {"status_code": response.status_code, "body": response.text[:200]},
        )
    return MediaJob.from_response(data)


class MediaClient:
    """
    Predictions API client.

    Args:
        config: media section of PaletteConfig
        api_key: overrides the key read from config.api_key_env
        retry_config: backoff for job creation
        http_client: injected httpx.AsyncClient (tests use MockTransport)
    """

    def __init__(
        self,
        config: MediaConfig = None,
        api_key: str = None,
        retry_config: RetryConfig = None,
        http_client: httpx.AsyncClient = None
    ):
        self.config = config or MediaConfig()
        self.api_key = api_key or get_api_key(self.config.api_key_env)
        self.retry_config = retry_config or RetryConfig()
        self._client = http_client

    @property
    def is_available(self) -> bool:
        return bool(self.api_key)

    def _headers(self) -> Dict:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json"
        }

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(base_url=self.config.provider_url, timeout=60.0)
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _post_prediction(self, request: MediaRequest) -> MediaJob:
        response = await self._http().post(
            f"/models/{request.model}/predictions",
            headers=self._headers(),
            json={"input": request.to_input()}
        )
        response.raise_for_status()
        return _parse_job(response)

    async def _fetch_prediction(self, job_id: str) -> MediaJob:
        response = await self._http().get(f"/predictions/{job_id}", headers=self._headers())
        response.raise_for_status()
        return _parse_job(response)

    async def create_job(self, request: MediaRequest) -> str:
        """Submit a job and return its id."""
        try:
            job = await retry_async_call(self._post_prediction, request, config=self.retry_config)
        except httpx.HTTPError as e:
            raise MediaError(f"Failed to create media job: {e}", {"model": request.model})
        logger.debug(f"Created media job {job.job_id} ({request.model})")
        return job.job_id

    async def get_job(self, job_id: str) -> MediaJob:
        """Fetch the current state of a job."""
        try:
            return await retry_async_call(self._fetch_prediction, job_id, config=self.retry_config)
        except httpx.HTTPError as e:
            raise MediaError(f"Failed to fetch media job {job_id}: {e}", {"job_id": job_id})

    async def wait_for_completion(self, job_id: str) -> MediaJob:
        """
        Poll a job until it reaches a terminal status.

        Raises:
            MediaJobFailedError: job ended failed or canceled
            MediaJobTimeoutError: still running after max_poll_attempts polls
        """
        for attempt in range(1, self.config.max_poll_attempts + 1):
            job = await self.get_job(job_id)

            if job.status == MediaJobStatus.SUCCEEDED:
                return job
            if job.status in (MediaJobStatus.FAILED, MediaJobStatus.CANCELED):
                raise MediaJobFailedError(job_id, job.status.value, job.error)

            if attempt < self.config.max_poll_attempts:
                await asyncio.sleep(self.config.poll_interval)

        logger.warning(f"Media job {job_id} timed out after {self.config.max_poll_attempts} polls")
        raise MediaJobTimeoutError(job_id, self.config.max_poll_attempts)

    async def generate(self, request: MediaRequest) -> MediaJob:
        """Create a job and wait for it."""
        job_id = await self.create_job(request)
        return await self.wait_for_completion(job_id)
