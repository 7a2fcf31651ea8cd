"""
Orchestrateur de transcription : choix du fournisseur, routage par taille,
retries avec backoff exponentiel, puis fallback ordonné entre fournisseurs.

Ordre strict : on épuise les retries d'un fournisseur AVANT de passer au suivant.

    auto     : openai (si taille OK) -> deepgram -> assemblyai
    explicit : un seul fournisseur, jamais de fallback
"""

import logging
import os
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Sequence

from app.core.config import MB, Settings
from app.core.errors import ConfigurationError, ProviderError
from app.features.transcription.providers.assemblyai import AssemblyAIProvider
from app.features.transcription.providers.base import TranscriptionProvider
from app.features.transcription.providers.deepgram import DeepgramProvider
from app.features.transcription.providers.whisper import WhisperProvider

logger = logging.getLogger(__name__)

AUTO = "auto"
PRIORITY = ("openai", "deepgram", "assemblyai")


@dataclass(frozen=True)
class TranscriptionResult:
    text: str
    provider: str
    attempts: int


@dataclass(frozen=True)
class RetryPolicy:
    retries: int = 3          # retries après la première tentative
    base_delay: float = 1.0   # secondes
    max_delay: float = 15.0

    def delay(self, retry_index: int) -> float:
        """Délai avant le retry n° retry_index (0, 1, 2...) : base * 2^n, plafonné."""
        return min(self.max_delay, self.base_delay * (2 ** retry_index))


def build_providers(settings: Settings) -> List[TranscriptionProvider]:
    """Fournisseurs dans l'ordre de priorité du mode auto."""
    attempt_timeout = settings.TRANSCRIPTION_TIMEOUT_MS / 1000
    return [
        WhisperProvider(
            api_key=settings.OPENAI_API_KEY,
            base_url=settings.OPENAI_BASE_URL,
            organization=settings.OPENAI_ORG,
            model=settings.WHISPER_MODEL,
            max_bytes=settings.whisper_max_bytes,
            timeout=attempt_timeout,
        ),
        DeepgramProvider(
            api_key=settings.DEEPGRAM_API_KEY,
            base_url=settings.DEEPGRAM_BASE_URL,
            model=settings.DEEPGRAM_MODEL,
            language=settings.DEEPGRAM_LANGUAGE,
            smart_format=settings.DEEPGRAM_SMART_FORMAT,
            punctuate=settings.DEEPGRAM_PUNCTUATE,
            timeout=attempt_timeout,
        ),
        AssemblyAIProvider(
            api_key=settings.ASSEMBLYAI_API_KEY,
            base_url=settings.ASSEMBLYAI_BASE_URL,
            model=settings.ASSEMBLYAI_MODEL,
            poll_interval=settings.ASSEMBLYAI_POLL_MS / 1000,
            total_timeout=settings.ASSEMBLYAI_TIMEOUT_MS / 1000,
            request_timeout=attempt_timeout,
        ),
    ]


class TranscriptionOrchestrator:
    def __init__(
        self,
        providers: Sequence[TranscriptionProvider],
        *,
        policy: RetryPolicy = RetryPolicy(),
        sleep: Callable[[float], None] = time.sleep,
    ):
        # l'ordre de la séquence EST l'ordre de priorité
        self.providers = list(providers)
        self.policy = policy
        self._sleep = sleep

    @classmethod
    def from_settings(cls, settings: Settings) -> "TranscriptionOrchestrator":
        return cls(
            build_providers(settings),
            policy=RetryPolicy(
                retries=settings.TRANSCRIPTION_RETRIES,
                base_delay=settings.RETRY_BASE_DELAY_MS / 1000,
                max_delay=settings.RETRY_MAX_DELAY_MS / 1000,
            ),
        )

    # ---------- Sélection ----------

    def get(self, name: str) -> Optional[TranscriptionProvider]:
        return next((p for p in self.providers if p.name == name), None)

    def normalize_hint(self, hint: Optional[str]) -> str:
        """Hint inconnu => auto."""
        value = (hint or AUTO).strip().lower()
        return value if self.get(value) is not None else AUTO

    def any_configured(self) -> bool:
        return any(p.is_configured() for p in self.providers)

    def plan(self, hint: Optional[str], size: int) -> List[TranscriptionProvider]:
        """Liste ordonnée des fournisseurs à essayer pour ce fichier."""
        mode = self.normalize_hint(hint)

        if mode != AUTO:
            provider = self.get(mode)
            if not provider.is_configured():
                raise ConfigurationError(f"{provider.name} provider not configured")
            if not provider.accepts(size):
                raise _size_error(provider, size)
            return [provider]

        configured = [p for p in self.providers if p.is_configured()]
        if not configured:
            raise ConfigurationError(
                "Transcription not configured (OPENAI_API_KEY, DEEPGRAM_API_KEY or ASSEMBLYAI_API_KEY required)"
            )
        eligible = []
        for p in configured:
            if p.accepts(size):
                eligible.append(p)
            else:
                logger.info("[transcription] skip %s: %.1fMB over its limit", p.name, size / MB)
        if not eligible:
            raise _size_error(configured[0], size)
        return eligible

    # ---------- Exécution ----------

    def transcribe(self, local_path: Path, original_name: str, *, hint: Optional[str] = AUTO) -> TranscriptionResult:
        size = os.path.getsize(local_path)
        # plan() ne renvoie jamais une liste vide
        *fallbacks, last = self.plan(hint, size)

        for provider in fallbacks:
            try:
                return self._run_provider(provider, Path(local_path), original_name)
            except ProviderError as e:
                logger.warning("[transcription] %s gave up, next provider: %s", provider.name, e)
        # dernier fournisseur : son erreur est celle qui remonte
        return self._run_provider(last, Path(local_path), original_name)

    def _run_provider(self, provider: TranscriptionProvider, local_path: Path, original_name: str) -> TranscriptionResult:
        attempt = 0
        while True:
            attempt += 1
            try:
                text = provider.transcribe(local_path, original_name)
            except ProviderError as e:
                retries_used = attempt - 1
                if not e.transient or retries_used >= self.policy.retries:
                    raise
                delay = self.policy.delay(retries_used)
                logger.warning(
                    "[transcription] %s transient error, retry %d/%d in %.1fs: %s",
                    provider.name, attempt, self.policy.retries, delay, e,
                )
                self._sleep(delay)
                continue
            logger.info("[transcription] %s succeeded after %d attempt(s)", provider.name, attempt)
            return TranscriptionResult(text=text, provider=provider.name, attempts=attempt)


def _size_error(provider: TranscriptionProvider, size: int) -> ProviderError:
    limit = (provider.max_bytes or 0) / MB
    return ProviderError(
        provider.name,
        f"File {size / MB:.1f}MB exceeds {provider.name} limit {limit:g}MB",
        transient=False,
    )
