"""
➡️ But : Table des fichiers uploadés (un record par artefact).

Le record est la source de vérité de l'avancement du pipeline :

    uploaded -> processing -> completed | failed

`encrypted` est décidé une fois à la création (has_pii OR has_pci) et ne change plus.
La paire clé/IV n'est présente que si `encrypted`.
"""

from enum import Enum
from typing import Optional

from sqlmodel import Field

from .base import BaseModelDB


class FileStatus(str, Enum):
    UPLOADED = "uploaded"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


# Transitions autorisées ; completed et failed sont terminaux.
ALLOWED_TRANSITIONS = {
    FileStatus.UPLOADED: {FileStatus.PROCESSING, FileStatus.FAILED},
    FileStatus.PROCESSING: {FileStatus.COMPLETED, FileStatus.FAILED},
    FileStatus.COMPLETED: set(),
    FileStatus.FAILED: set(),
}


class FileRecord(BaseModelDB, table=True):
    """Fichier soumis pour transcription, stocké dans le bucket et référencé en DB."""

    owner_id: int = Field(index=True, nullable=False, description="Propriétaire du fichier")
    original_name: str = Field(description="Nom fourni par l'utilisateur (sert à dériver les clés)")

    upload_key: Optional[str] = Field(default=None, description="Clé staging (upload/...)")
    processed_key: Optional[str] = Field(default=None, description="Clé de l'original déplacé (processed/...)")
    transcript_key: Optional[str] = Field(default=None, description="Clé de la transcription (completed/...)")

    has_pii: bool = Field(default=False)
    has_pci: bool = Field(default=False)
    encrypted: bool = Field(default=False)
    encryption_key_b64: Optional[str] = Field(default=None)
    encryption_iv_b64: Optional[str] = Field(default=None)

    status: FileStatus = Field(default=FileStatus.UPLOADED, index=True)
    error: Optional[str] = Field(default=None, description="Dernière erreur (si status=failed)")
