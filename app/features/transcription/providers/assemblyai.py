"""
Fournisseur AssemblyAI : trois appels.

1) POST /v2/upload        (fichier en streaming)  -> upload_url
2) POST /v2/transcript    {audio_url, speech_model} -> id
3) GET  /v2/transcript/id  à intervalle fixe jusqu'à completed / error ou la deadline
"""

import logging
import threading
import time
from enum import Enum
from pathlib import Path
from typing import Callable, Optional

import httpx

from app.core.errors import ProviderError
from app.features.transcription.providers.base import TranscriptionProvider, call_with_deadline, iter_file

logger = logging.getLogger(__name__)


class JobStatus(str, Enum):
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value) -> "JobStatus":
        try:
            status = cls(str(value).strip().lower())
        except ValueError:
            return cls.UNKNOWN
        return status


class AssemblyAIProvider(TranscriptionProvider):
    name = "assemblyai"

    def __init__(
        self,
        *,
        api_key: Optional[str],
        base_url: str = "https://api.assemblyai.com",
        model: str = "universal",
        poll_interval: float = 3.0,
        total_timeout: float = 300.0,
        request_timeout: float = 120.0,
        transport: Optional[httpx.BaseTransport] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.poll_interval = poll_interval
        self.total_timeout = total_timeout
        self.request_timeout = request_timeout
        self._transport = transport
        self._clock = clock

    def is_configured(self) -> bool:
        return bool(self.api_key)

    def transcribe(self, local_path: Path, original_name: str) -> str:
        if not self.is_configured():
            raise self.not_configured("ASSEMBLYAI_API_KEY")
        try:
            return call_with_deadline(
                lambda cancel: self._run(local_path, cancel),
                timeout=self.total_timeout,
                provider=self.name,
                what="transcription",
            )
        except httpx.HTTPStatusError as e:
            step = e.request.url.path
            raise ProviderError(
                self.name, f"AssemblyAI {step} failed: {e.response.status_code}", transient=False
            ) from e
        except httpx.TransportError as e:
            raise ProviderError(self.name, f"AssemblyAI connection error: {e}", transient=True) from e
        except ValueError as e:
            raise ProviderError(self.name, "AssemblyAI returned an invalid response", transient=False) from e

    # ---------- étapes ----------

    def _run(self, local_path: Path, cancel: threading.Event) -> str:
        deadline = self._clock() + self.total_timeout
        with httpx.Client(
            base_url=self.base_url,
            headers={"authorization": self.api_key or ""},
            timeout=self.request_timeout,
            transport=self._transport,
        ) as client:
            upload_url = self._upload(client, local_path)
            job_id = self._create_job(client, upload_url)
            logger.info("[assemblyai] job created id=%s", job_id)
            return self._poll(client, job_id, deadline, cancel)

    def _upload(self, client: httpx.Client, local_path: Path) -> str:
        resp = client.post("/v2/upload", content=iter_file(local_path))
        resp.raise_for_status()
        upload_url = self._json_object(resp).get("upload_url")
        if not upload_url:
            raise ProviderError(self.name, "AssemblyAI upload_url missing", transient=False)
        return upload_url

    def _create_job(self, client: httpx.Client, upload_url: str) -> str:
        resp = client.post("/v2/transcript", json={"audio_url": upload_url, "speech_model": self.model})
        resp.raise_for_status()
        job_id = self._json_object(resp).get("id")
        if not job_id:
            raise ProviderError(self.name, "AssemblyAI transcript id missing", transient=False)
        return job_id

    def _json_object(self, resp: httpx.Response) -> dict:
        data = resp.json()
        if not isinstance(data, dict):
            raise ProviderError(
                self.name, f"AssemblyAI {resp.request.url.path} returned a non-object body", transient=False
            )
        return data

    def _poll(self, client: httpx.Client, job_id: str, deadline: float, cancel: threading.Event) -> str:
        while self._clock() < deadline and not cancel.is_set():
            resp = client.get(f"/v2/transcript/{job_id}")
            resp.raise_for_status()
            data = self._json_object(resp)
            status = JobStatus.parse(data.get("status"))

            if status is JobStatus.COMPLETED:
                return data.get("text") or ""
            if status is JobStatus.ERROR:
                raise ProviderError(
                    self.name, f"AssemblyAI error: {data.get('error') or 'unknown'}", transient=False
                )
            if status is JobStatus.UNKNOWN:
                raise ProviderError(
                    self.name, f"AssemblyAI unexpected job status: {data.get('status')!r}", transient=False
                )
            # queued / processing : on attend (interruptible par la deadline)
            if cancel.wait(self.poll_interval):
                break
        raise ProviderError(self.name, "AssemblyAI transcription timeout", transient=True)
