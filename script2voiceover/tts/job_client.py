"""Client for the asynchronous serverless TTS endpoint (submit, then poll)."""

import base64
import binascii
import json
import logging
import time
import urllib.error
import urllib.request
from typing import Any, Callable, Optional

from script2voiceover.errors import SynthesisFailed, SynthesisTimeout
from script2voiceover.models import JobState, ReferencePayload, SynthesisJob

logger = logging.getLogger(__name__)

POLL_INTERVAL = 2.0
MAX_POLL_ATTEMPTS = 120
REQUEST_TIMEOUT = 60
MAX_REQUEST_BYTES = 50 * 1024 * 1024

# Remote status → job state. Anything unknown keeps the job non-terminal.
_STATUS_MAP = {
    "IN_QUEUE": JobState.QUEUED,
    "QUEUED": JobState.QUEUED,
    "IN_PROGRESS": JobState.RUNNING,
    "COMPLETED": JobState.COMPLETED,
    "FAILED": JobState.FAILED,
    "CANCELLED": JobState.FAILED,
    "TIMED_OUT": JobState.FAILED,
}


class SynthesisJobClient:
    """Runs one chunk at a time through the inference service.

    ``submit`` starts a job; ``poll`` blocks, sleeping ``poll_interval``
    seconds between status checks, until the job completes, fails, or
    ``max_polls`` checks have been spent.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        poll_interval: float = POLL_INTERVAL,
        max_polls: int = MAX_POLL_ATTEMPTS,
        timeout: float = REQUEST_TIMEOUT,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.poll_interval = poll_interval
        self.max_polls = max_polls
        self.timeout = timeout
        self._sleep = sleep

    def submit(self, text: str, reference: Optional[ReferencePayload] = None) -> str:
        """Start a synthesis job and return its id.

        The reference audio field is only sent when cloning; its absence
        makes the backend use its default voice.
        """
        payload: dict[str, Any] = {"text": text, "prompt": text}
        if reference is not None:
            payload["reference_audio_base64"] = reference.to_base64()

        body = json.dumps({"input": payload}).encode("utf-8")
        if len(body) > MAX_REQUEST_BYTES:
            raise SynthesisFailed(
                f"Request payload too large: {len(body) / 1024 / 1024:.2f}MB "
                f"(limit is {MAX_REQUEST_BYTES // (1024 * 1024)}MB). Try a smaller voice sample."
            )

        logger.debug(
            "Starting TTS job (text: %d chars, voice sample: %s)",
            len(text), f"{reference.size} bytes" if reference else "none",
        )
        result = self._request("POST", "/run", body)
        job_id = result.get("id")
        if not job_id:
            raise SynthesisFailed("No job ID returned from inference service")

        logger.debug("TTS job created: %s", job_id)
        return str(job_id)

    def check_status(self, job_id: str) -> SynthesisJob:
        """Fetch the current state of a job once."""
        result = self._request("GET", f"/status/{job_id}")
        status = str(result.get("status", "")).upper()
        job = SynthesisJob(id=job_id, state=_STATUS_MAP.get(status, JobState.QUEUED))

        if job.state is JobState.FAILED:
            job.error = str(result.get("error") or status or "Unknown error")
        elif job.state is JobState.COMPLETED:
            output = result.get("output") or {}
            audio_b64 = output.get("audio_base64") if isinstance(output, dict) else None
            if not audio_b64:
                raise SynthesisFailed("No audio_base64 in completed job output", job_id=job_id)
            try:
                job.result_audio = base64.b64decode(audio_b64, validate=True)
            except (binascii.Error, ValueError) as e:
                raise SynthesisFailed(f"Invalid audio_base64 in job output: {e}", job_id=job_id) from e
            job.sample_rate = output.get("sample_rate")
        return job

    def poll(self, job_id: str) -> bytes:
        """Wait for a job to finish and return its decoded WAV bytes.

        Raises:
            SynthesisFailed: The job failed or returned unusable output.
            SynthesisTimeout: The job was still pending after ``max_polls`` checks.
        """
        for attempt in range(self.max_polls):
            job = self.check_status(job_id)
            if job.state is JobState.COMPLETED:
                logger.debug("Job %s completed: %d bytes", job_id, len(job.result_audio))
                return job.result_audio
            if job.state is JobState.FAILED:
                logger.error("TTS job %s failed: %s", job_id, job.error)
                raise SynthesisFailed(job.error, job_id=job_id)
            self._sleep(self.poll_interval)

        logger.error("Job %s timed out after %d attempts", job_id, self.max_polls)
        raise SynthesisTimeout(job_id, self.max_polls, self.poll_interval)

    def synthesize(self, text: str, reference: Optional[ReferencePayload] = None) -> bytes:
        """Submit one chunk and wait for its audio."""
        return self.poll(self.submit(text, reference))

    def _request(self, method: str, path: str, body: Optional[bytes] = None) -> dict:
        headers = {"Authorization": f"Bearer {self.api_key}"}
        if body is not None:
            headers["Content-Type"] = "application/json"
        req = urllib.request.Request(
            f"{self.base_url}{path}", data=body, headers=headers, method=method
        )
        try:
            with urllib.request.urlopen(req, timeout=self.timeout) as resp:
                raw = resp.read()
        except urllib.error.HTTPError as e:
            detail = e.read().decode("utf-8", errors="replace")[:200]
            logger.error("Inference API error: %s %s - %s", method, path, detail)
            raise SynthesisFailed(f"HTTP {e.code} - {detail}") from e
        except (urllib.error.URLError, OSError) as e:
            raise SynthesisFailed(f"Inference service unreachable: {e}") from e

        try:
            result = json.loads(raw)
        except json.JSONDecodeError as e:
            raise SynthesisFailed("Invalid JSON from inference service") from e
        if not isinstance(result, dict):
            raise SynthesisFailed("Unexpected response from inference service")
        return result
