"""Fournisseur Deepgram : POST des octets bruts sur /v1/listen, paramètres en query string."""

import logging
from pathlib import Path
from typing import Any, Dict, Optional

import httpx

from app.core.errors import ProviderError
from app.features.transcription.providers.base import TranscriptionProvider, call_with_deadline
from app.utils.media_files import guess_content_type

logger = logging.getLogger(__name__)


def extract_transcript(payload: Dict[str, Any]) -> str:
    """results.channels[0].alternatives[0] -> paragraphs.transcript, sinon transcript."""
    try:
        alt = payload["results"]["channels"][0]["alternatives"][0]
    except (KeyError, IndexError, TypeError):
        return ""
    paragraphs = alt.get("paragraphs") or {}
    return paragraphs.get("transcript") or alt.get("transcript") or ""


class DeepgramProvider(TranscriptionProvider):
    name = "deepgram"

    def __init__(
        self,
        *,
        api_key: Optional[str],
        base_url: str = "https://api.deepgram.com",
        model: str = "nova-2",
        language: str = "",
        smart_format: bool = True,
        punctuate: bool = True,
        timeout: float = 120.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.language = language
        self.smart_format = smart_format
        self.punctuate = punctuate
        self.timeout = timeout
        self._transport = transport

    def is_configured(self) -> bool:
        return bool(self.api_key)

    def query_params(self) -> Dict[str, str]:
        params: Dict[str, str] = {}
        if self.model:
            params["model"] = self.model
        if self.language:
            params["language"] = self.language
        if self.smart_format:
            params["smart_format"] = "true"
        if self.punctuate:
            params["punctuate"] = "true"
        return params

    def transcribe(self, local_path: Path, original_name: str) -> str:
        if not self.is_configured():
            raise self.not_configured("DEEPGRAM_API_KEY")

        def _call(cancel):
            body = Path(local_path).read_bytes()
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                resp = client.post(
                    f"{self.base_url}/v1/listen",
                    params=self.query_params(),
                    headers={
                        "Authorization": f"Token {self.api_key}",
                        "Content-Type": guess_content_type(original_name),
                    },
                    content=body,
                )
                resp.raise_for_status()
                return resp.json()

        try:
            payload = call_with_deadline(_call, timeout=self.timeout + 1, provider=self.name, what="transcription")
        except httpx.HTTPStatusError as e:
            detail = e.response.text[:200]
            raise ProviderError(self.name, f"Deepgram HTTP {e.response.status_code}: {detail}", transient=False) from e
        except httpx.TransportError as e:
            raise ProviderError(self.name, f"Deepgram connection error: {e}", transient=True) from e
        except ValueError as e:
            raise ProviderError(self.name, "Deepgram returned an invalid response", transient=False) from e

        transcript = extract_transcript(payload)
        if not transcript:
            raise ProviderError(self.name, "Deepgram returned no transcript", transient=False)
        return transcript
