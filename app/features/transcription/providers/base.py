"""
Contrat commun des fournisseurs de transcription.

Chaque adaptateur cache son protocole réseau derrière
`transcribe(local_path, original_name) -> str` et ne lève que des ProviderError :

- transient=True  : reset de connexion, timeout, DNS, deadline interne dépassée
- transient=False : config manquante, erreur rapportée par le fournisseur
"""

import errno
import logging
import re
import socket
import threading
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeout
from pathlib import Path
from typing import Callable, Iterator, Optional, TypeVar

from app.core.errors import ProviderError

logger = logging.getLogger(__name__)

T = TypeVar("T")

_TRANSIENT_RE = re.compile(r"ECONNRESET|ETIMEDOUT|EAI_AGAIN|timed? ?out", re.IGNORECASE)
_TRANSIENT_ERRNOS = {errno.ECONNRESET, errno.ETIMEDOUT, errno.ECONNABORTED, errno.EPIPE}


class TranscriptionProvider(ABC):
    name: str = "provider"
    # Taille max acceptée (octets), None = illimitée
    max_bytes: Optional[int] = None

    @abstractmethod
    def is_configured(self) -> bool:
        ...

    @abstractmethod
    def transcribe(self, local_path: Path, original_name: str) -> str:
        ...

    def accepts(self, size: int) -> bool:
        return self.max_bytes is None or size <= self.max_bytes

    def not_configured(self, setting: str) -> ProviderError:
        return ProviderError(self.name, f"{setting} not configured", transient=False)


def call_with_deadline(
    fn: Callable[[threading.Event], T],
    *,
    timeout: float,
    provider: str,
    what: str = "call",
) -> T:
    """
    Course entre l'appel et la deadline.

    L'appel tourne dans un thread ; passé `timeout` secondes on l'abandonne
    (même si le transport n'a pas rendu la main) et on lève l'évènement `cancel`
    que les boucles longues (polling) surveillent. Résultat : ProviderError transitoire.
    """
    cancel = threading.Event()
    executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"{provider}-{what}")
    future = executor.submit(fn, cancel)
    try:
        return future.result(timeout=timeout)
    except FuturesTimeout:
        if future.done():
            # TimeoutError levé par l'appel lui-même, pas par la course
            raise
        cancel.set()
        logger.warning("[%s] %s abandoned after %.1fs", provider, what, timeout)
        raise ProviderError(provider, f"{provider} {what} timed out", transient=True) from None
    finally:
        executor.shutdown(wait=False)


def is_transient_exception(exc: BaseException) -> bool:
    """Erreurs réseau 'classiques' qui méritent un retry."""
    if isinstance(exc, (TimeoutError, ConnectionResetError, ConnectionAbortedError, socket.gaierror)):
        return True
    if isinstance(exc, OSError) and exc.errno in _TRANSIENT_ERRNOS:
        return True
    return bool(_TRANSIENT_RE.search(str(exc)))


def iter_file(path: Path, chunk_size: int = 1024 * 1024) -> Iterator[bytes]:
    with open(path, "rb") as fh:
        while True:
            chunk = fh.read(chunk_size)
            if not chunk:
                return
            yield chunk
