import posixpath
from typing import Optional

import filetype


# Namespaces du bucket : upload/ (staging) -> processed/ (original traité) ; completed/ (transcriptions)
STAGING_PREFIX = "upload"
PROCESSED_PREFIX = "processed"
COMPLETED_PREFIX = "completed"

_EXT_CONTENT_TYPES = {
    ".mp3": "audio/mpeg",
    ".wav": "audio/wav",
    ".m4a": "audio/mp4",
    ".mp4": "video/mp4",
    ".webm": "audio/webm",
    ".ogg": "audio/ogg",
    ".flac": "audio/flac",
}

TEXT_CONTENT_TYPE = "text/plain; charset=utf-8"


def guess_content_type(name: str, head: Optional[bytes] = None) -> str:
    """
    Détecte le type réel via 'filetype' quand on a les premiers octets,
    sinon (ou si inconnu) d'après l'extension. Fallback : octet-stream.
    """
    if head:
        kind = filetype.guess(head)
        if kind is not None:
            return kind.mime
    ext = posixpath.splitext(str(name or "").lower())[1]
    return _EXT_CONTENT_TYPES.get(ext, "application/octet-stream")


def safe_name(original_name: str) -> str:
    """Nom de base utilisé dans les clés (pas de sous-dossiers injectés par le client)."""
    base = posixpath.basename(str(original_name or "").replace("\\", "/"))
    if base in ("", ".", ".."):
        raise ValueError("Missing file name")
    return base


# ⚠️ Les clés ne dépendent que du nom de fichier : deux uploads du même nom
# (même user ou non) écrivent au même endroit.

def staging_key(original_name: str) -> str:
    return f"{STAGING_PREFIX}/{safe_name(original_name)}"


def processed_key(original_name: str) -> str:
    return f"{PROCESSED_PREFIX}/{safe_name(original_name)}"


def transcript_key(original_name: str) -> str:
    return f"{COMPLETED_PREFIX}/{safe_name(original_name)}.txt"


def revised_transcript_key(current_transcript_key: str) -> str:
    # completed/test.mp3.txt -> completed/revised-test.mp3.txt
    return f"{COMPLETED_PREFIX}/revised-{posixpath.basename(current_transcript_key)}"
