"""Fournisseur OpenAI Whisper : un appel synchrone, fichier limité en taille."""

import logging
from pathlib import Path
from typing import Callable, Optional

import openai
from openai import OpenAI

from app.core.errors import ProviderError
from app.features.transcription.providers.base import (
    TranscriptionProvider,
    call_with_deadline,
    is_transient_exception,
)

logger = logging.getLogger(__name__)


class WhisperProvider(TranscriptionProvider):
    name = "openai"

    def __init__(
        self,
        *,
        api_key: Optional[str],
        base_url: Optional[str] = None,
        organization: Optional[str] = None,
        model: str = "whisper-1",
        max_bytes: Optional[int] = 25 * 1024 * 1024,
        timeout: float = 120.0,
        client_factory: Optional[Callable[[], OpenAI]] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url
        self.organization = organization
        self.model = model
        self.max_bytes = max_bytes
        self.timeout = timeout
        self._client_factory = client_factory

    def is_configured(self) -> bool:
        return bool(self.api_key)

    def client(self) -> OpenAI:
        if self._client_factory is not None:
            return self._client_factory()
        # max_retries=0 : les retries sont gérés par l'orchestrateur
        return OpenAI(
            api_key=self.api_key,
            base_url=self.base_url or None,
            organization=self.organization or None,
            timeout=self.timeout,
            max_retries=0,
        )

    def transcribe(self, local_path: Path, original_name: str) -> str:
        if not self.is_configured():
            raise self.not_configured("OPENAI_API_KEY")

        client = self.client()

        def _call(cancel):
            with open(local_path, "rb") as fh:
                # le nom d'origine porte l'extension dont Whisper a besoin
                return client.audio.transcriptions.create(
                    model=self.model,
                    file=(original_name, fh),
                    response_format="text",
                )

        try:
            # +1s : le timeout du SDK doit normalement partir en premier
            resp = call_with_deadline(_call, timeout=self.timeout + 1, provider=self.name, what="transcription")
        except openai.APIConnectionError as e:  # inclut APITimeoutError
            raise ProviderError(self.name, f"OpenAI connection error: {e}", transient=True) from e
        except openai.APIStatusError as e:
            raise ProviderError(self.name, f"OpenAI HTTP {e.status_code}: {e.message}", transient=False) from e
        except openai.OpenAIError as e:
            raise ProviderError(self.name, f"OpenAI error: {e}", transient=False) from e
        except OSError as e:
            raise ProviderError(self.name, f"OpenAI call failed: {e}", transient=is_transient_exception(e)) from e

        return resp if isinstance(resp, str) else (getattr(resp, "text", "") or "")
