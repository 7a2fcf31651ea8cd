"""
Erreurs métier du pipeline d'intake.

Chaque classe porte le code HTTP vers lequel les routers la traduisent ;
le message (`str(e)`) est la raison courte montrée à l'utilisateur.
"""

from typing import Optional

from fastapi import HTTPException


class PipelineError(Exception):
    status_code: int = 500


# ---------- Entrées / configuration ----------

class ValidationError(PipelineError):
    status_code = 400


class ConfigurationError(ValidationError):
    status_code = 500


# ---------- Antivirus ----------

class ScanError(PipelineError):
    pass


class ScanInfected(ScanError):
    status_code = 400


class ScanUnavailable(ScanError):
    status_code = 503


class ScanIOError(ScanError):
    status_code = 500


# ---------- Transcription ----------

class ProviderError(PipelineError):
    """Échec d'un fournisseur. `transient=True` => un retry a des chances de passer."""

    status_code = 502

    def __init__(self, provider: str, message: str, *, transient: bool = False):
        super().__init__(message)
        self.provider = provider
        self.transient = transient

    def __repr__(self) -> str:
        return f"ProviderError(provider={self.provider!r}, transient={self.transient}, message={str(self)!r})"


class TranscriptionFailed(PipelineError):
    status_code = 502

    def __init__(self, message: str, *, cause: Optional[Exception] = None):
        super().__init__(message)
        self.cause = cause


# ---------- Stockage / records ----------

class StorageError(PipelineError):
    status_code = 502


class RecordNotFound(PipelineError):
    status_code = 404


class RetranscriptionRejected(PipelineError):
    status_code = 400


class InvalidTransition(PipelineError):
    status_code = 500


def as_http_exception(error: PipelineError) -> HTTPException:
    """Traduction erreur métier -> HTTPException (raison courte, pas de détail interne)."""
    return HTTPException(status_code=error.status_code, detail=str(error) or error.__class__.__name__)
