"""
Remote transcription (AssemblyAI-compatible REST API).

upload payload -> submit job -> poll until the job reaches a terminal status.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional

import requests

from core.config import Settings
from core.errors import TranscriptionError, TranscriptionTimeout, UploadError
from core.models import AudioPayload, JobStatus, TranscriptionJob
from core.remote import create_session, error_detail, is_success, json_body

logger = logging.getLogger(__name__)


class TranscriptionPipeline:
    def __init__(self, settings: Settings, session: Optional[requests.Session] = None):
        self.s = settings
        self._session = session if session is not None else create_session(settings)
        self.polls = 0

    def _headers(self, **extra) -> dict:
        headers = {"authorization": self.s.ASSEMBLYAI_API_KEY or ""}
        headers.update(extra)
        return headers

    async def transcribe(self,
                         payload: AudioPayload,
                         on_job: Optional[Callable[[str], None]] = None) -> str:
        """
        Upload ``payload``, submit a job and wait for its text.

        ``on_job`` is called with the job id as soon as the job is accepted.
        Raises UploadError, TranscriptionError or TranscriptionTimeout.
        """
        if not self.s.ASSEMBLYAI_API_KEY:
            raise UploadError("Transcription service is not configured")
        upload_url = await self._upload(payload)
        job_id = await self._submit(upload_url)
        if on_job is not None:
            on_job(job_id)
        return await self._poll(job_id)

    async def _upload(self, payload: AudioPayload) -> str:
        url = f"{self.s.ASSEMBLYAI_BASE_URL}/v2/upload"
        logger.debug(f"[transcribe] upload bytes={len(payload)}")
        try:
            resp = await asyncio.to_thread(
                self._session.post, url,
                data=payload.data,
                headers=self._headers(**{"content-type": "application/octet-stream"}),
                timeout=self.s.HTTP_TIMEOUT,
            )
        except requests.RequestException as e:
            raise UploadError(f"Upload failed: {e}") from e
        if not is_success(resp):
            raise UploadError(f"Upload failed: {error_detail(resp)}")
        upload_url = json_body(resp).get("upload_url")
        if not upload_url:
            raise UploadError("Upload failed: no upload_url in response")
        return upload_url

    async def _submit(self, upload_url: str) -> str:
        url = f"{self.s.ASSEMBLYAI_BASE_URL}/v2/transcript"
        try:
            resp = await asyncio.to_thread(
                self._session.post, url,
                json={"audio_url": upload_url},
                headers=self._headers(),
                timeout=self.s.HTTP_TIMEOUT,
            )
        except requests.RequestException as e:
            raise UploadError(f"Job submission failed: {e}") from e
        if not is_success(resp):
            raise UploadError(f"Job submission failed: {error_detail(resp)}")
        job_id = json_body(resp).get("id")
        if not job_id:
            raise UploadError("Job submission failed: no job id in response")
        logger.debug(f"[transcribe] submitted job_id={job_id}")
        return str(job_id)

    async def fetch_job(self, job_id: str) -> TranscriptionJob:
        url = f"{self.s.ASSEMBLYAI_BASE_URL}/v2/transcript/{job_id}"
        # Not retried: a network failure while polling ends the transcription
        try:
            resp = await asyncio.to_thread(
                self._session.get, url,
                headers=self._headers(),
                timeout=self.s.HTTP_TIMEOUT,
            )
        except requests.RequestException as e:
            raise TranscriptionError(detail=str(e)) from e
        if not is_success(resp):
            raise TranscriptionError(detail=error_detail(resp))
        body = json_body(resp)
        try:
            status = JobStatus(body.get("status"))
        except ValueError as e:
            raise TranscriptionError(detail=f"unknown job status {body.get('status')!r}") from e
        return TranscriptionJob(id=job_id, status=status, text=body.get("text"), error=body.get("error"))

    async def _poll(self, job_id: str) -> str:
        max_polls = self.s.TRANSCRIPTION_MAX_POLLS
        self.polls = 0
        for attempt in range(1, max_polls + 1):
            job = await self.fetch_job(job_id)
            self.polls = attempt
            logger.debug(f"[transcribe] poll {attempt}/{max_polls} job_id={job_id} status={job.status.value}")
            if job.status is JobStatus.COMPLETED:
                return job.text or ""
            if job.status is JobStatus.ERROR:
                raise TranscriptionError(detail=job.error or "unknown error")
            if attempt < max_polls:
                await asyncio.sleep(self.s.TRANSCRIPTION_POLL_INTERVAL)
        raise TranscriptionTimeout(
            f"Transcription did not finish after {max_polls} polls"
        )
