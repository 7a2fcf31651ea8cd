"""
Pipeline d'intake et requêtes sur les fichiers.

IntakeService orchestre, pour UN fichier et dans la requête qui l'a soumis :

    reçu -> scanné -> stocké (upload/) -> transcrit -> stocké (completed/) -> déplacé (processed/) -> enregistré

Chaque étape = un appel à un collaborateur. Un échec après la création du record
le passe en `failed` avec une raison courte, puis l'erreur remonte au router.
Un fichier infecté est rejeté AVANT toute écriture (ni objet, ni record).
"""

import logging
import os
import tempfile
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, List, Optional, Tuple

from app.core.config import Settings
from app.core.errors import (
    ConfigurationError,
    PipelineError,
    ProviderError,
    RecordNotFound,
    RetranscriptionRejected,
    ScanInfected,
    StorageError,
    TranscriptionFailed,
    ValidationError,
)
from app.db.models.files import FileRecord, FileStatus
from app.db.repositories.files import FileRecordRepository
from app.features.files.schemas import FileOut
from app.features.transcription.services import AUTO, TranscriptionOrchestrator
from app.security import crypto
from app.utils.clamd import ClamdScanner
from app.utils.media_files import (
    TEXT_CONTENT_TYPE,
    guess_content_type,
    processed_key,
    revised_transcript_key,
    safe_name,
    staging_key,
    transcript_key,
)
from app.utils.s3 import ObjectStore

logger = logging.getLogger(__name__)

SKIPPED_PLACEHOLDER = "[transcription skipped]"
UNAVAILABLE_PLACEHOLDER = "[transcription temporarily unavailable]"

SPOOL_CHUNK = 1024 * 1024
LIST_LIMIT = 100


@dataclass(frozen=True)
class RetranscribeResult:
    transcript_key: str
    transcript_url: str
    provider: str


def get_owned_record(repo: FileRecordRepository, file_id: int, owner_id: int) -> FileRecord:
    record = repo.get_for_owner(file_id, owner_id)
    if not record:
        raise RecordNotFound("Not found")
    return record


def key_material(record: FileRecord) -> Tuple[bytes, bytes]:
    if not record.encryption_key_b64 or not record.encryption_iv_b64:
        raise StorageError("Encryption material missing for an encrypted file")
    return crypto.decode_key_material(record.encryption_key_b64, record.encryption_iv_b64)


class IntakeService:
    def __init__(
        self,
        *,
        settings: Settings,
        repo: FileRecordRepository,
        store: ObjectStore,
        orchestrator: TranscriptionOrchestrator,
        scanner: Optional[ClamdScanner] = None,
    ):
        self.settings = settings
        self.repo = repo
        self.store = store
        self.orchestrator = orchestrator
        self.scanner = scanner

    # =====================================================
    # Intake
    # =====================================================

    def intake(
        self,
        fileobj: Optional[BinaryIO],
        *,
        original_name: Optional[str],
        owner_id: int,
        has_pii: bool = False,
        has_pci: bool = False,
        provider: Optional[str] = AUTO,
    ) -> FileRecord:
        self._check_storage_config()
        if fileobj is None or not original_name:
            raise ValidationError("No file uploaded")
        try:
            name = safe_name(original_name)
        except ValueError as e:
            raise ValidationError(str(e)) from e

        local_path = self._spool(fileobj)
        try:
            logger.info(
                "[upload] start user=%s name=%s size=%d", owner_id, name, local_path.stat().st_size
            )
            return self._process(
                local_path,
                name=name,
                owner_id=owner_id,
                has_pii=has_pii,
                has_pci=has_pci,
                provider=provider,
            )
        finally:
            local_path.unlink(missing_ok=True)

    def _process(
        self,
        local_path: Path,
        *,
        name: str,
        owner_id: int,
        has_pii: bool,
        has_pci: bool,
        provider: Optional[str],
    ) -> FileRecord:
        # 1) Antivirus
        self._scan(local_path)

        # 2) Chiffrement éventuel (décidé une fois pour toutes)
        encrypted = bool(has_pii or has_pci)
        payload = local_path.read_bytes()
        content_type = guess_content_type(name, payload[:261])
        key = iv = None
        key_b64 = iv_b64 = None
        if encrypted:
            key, iv = crypto.generate_key_material()
            key_b64, iv_b64 = crypto.encode_key_material(key, iv)
            payload = crypto.encrypt(key, iv, payload)
            content_type = "application/octet-stream"

        # 3) Record (sans clé tant que rien n'est écrit) puis staging
        upload_key = staging_key(name)
        record = self.repo.create(
            owner_id=owner_id,
            original_name=name,
            has_pii=bool(has_pii),
            has_pci=bool(has_pci),
            encrypted=encrypted,
            encryption_key_b64=key_b64,
            encryption_iv_b64=iv_b64,
            status=FileStatus.UPLOADED,
        )

        try:
            self.store.put(upload_key, payload, content_type=content_type)
            del payload
            self.repo.mark_processing(record, upload_key=upload_key)

            # 4) Transcription
            text = self._transcribe(local_path, name, provider)
            body = crypto.encrypt_text(key, iv, text) if encrypted else text

            # 5) Transcription -> completed/
            t_key = transcript_key(name)
            self.store.put(t_key, body, content_type=TEXT_CONTENT_TYPE)

            # 6) Original : upload/ -> processed/ (copie + suppression du staging)
            p_key = processed_key(name)
            self.store.relocate(upload_key, p_key)

            # 7) Record final
            record = self.repo.mark_completed(record, transcript_key=t_key, processed_key=p_key)
        except Exception as e:
            self._fail(record, e)
            raise

        logger.info("[upload] done id=%s transcript=%s processed=%s", record.id, t_key, p_key)
        return record

    # ---------- étapes ----------

    def _check_storage_config(self) -> None:
        missing = self.settings.missing_storage_config()
        if missing:
            raise ConfigurationError(missing)

    def _spool(self, fileobj: BinaryIO) -> Path:
        """Copie l'upload dans un fichier temporaire, par morceaux, en contrôlant la taille."""
        max_bytes = self.settings.max_upload_bytes
        fd, tmp_name = tempfile.mkstemp(prefix="intake-", dir=self.settings.UPLOAD_TMP_DIR)
        path = Path(tmp_name)
        size = 0
        try:
            with os.fdopen(fd, "wb") as out:
                while True:
                    chunk = fileobj.read(SPOOL_CHUNK)
                    if not chunk:
                        break
                    size += len(chunk)
                    if size > max_bytes:
                        raise ValidationError(f"File too large (max {self.settings.MAX_UPLOAD_MB} MB)")
                    out.write(chunk)
            if size == 0:
                raise ValidationError("Empty file")
        except BaseException:
            path.unlink(missing_ok=True)
            raise
        return path

    def _scan(self, local_path: Path) -> None:
        if self.settings.SKIP_VIRUS_SCAN or self.scanner is None:
            logger.info("[upload] virus scan skipped")
            return
        if not self.scanner.scan(local_path):
            raise ScanInfected("Virus detected by ClamAV")

    def _transcribe(self, local_path: Path, name: str, provider: Optional[str]) -> str:
        if self.settings.SKIP_TRANSCRIPTION:
            return SKIPPED_PLACEHOLDER
        try:
            result = self.orchestrator.transcribe(local_path, name, hint=provider)
        except ProviderError as e:
            logger.error("[upload] transcription failed for %s: %s", name, e)
            if self.settings.FAIL_ON_TRANSCRIPTION_ERROR:
                raise TranscriptionFailed(f"Transcription failed: {e}", cause=e) from e
            return UNAVAILABLE_PLACEHOLDER
        return result.text

    def _fail(self, record: FileRecord, error: Exception) -> None:
        reason = str(error) if isinstance(error, PipelineError) and str(error) else "Internal error"
        logger.error("[upload] file id=%s failed: %s", record.id, reason, exc_info=error)
        try:
            self.repo.mark_failed(record, error=reason)
        except PipelineError:
            # l'erreur d'origine reste celle qu'on remonte
            logger.exception("[upload] could not mark file id=%s as failed", record.id)

    # =====================================================
    # Re-transcription
    # =====================================================

    def retranscribe(self, file_id: int, *, owner_id: int, provider: Optional[str] = AUTO) -> RetranscribeResult:
        record = get_owned_record(self.repo, file_id, owner_id)
        if record.encrypted:
            raise RetranscriptionRejected("Cannot retranscribe encrypted files")
        self._check_storage_config()
        if not self.orchestrator.any_configured():
            raise ConfigurationError("No transcription provider configured")

        source_key = record.processed_key or record.upload_key
        if not source_key:
            raise ValidationError("No source file available to transcribe")

        fd, tmp_name = tempfile.mkstemp(prefix=f"retranscribe-{record.id}-", dir=self.settings.UPLOAD_TMP_DIR)
        os.close(fd)
        local_path = Path(tmp_name)
        try:
            self.store.download_to(source_key, local_path)
            try:
                result = self.orchestrator.transcribe(local_path, record.original_name, hint=provider)
            except ProviderError as e:
                raise TranscriptionFailed(str(e) or "Transcription failed after retries", cause=e) from e
        finally:
            local_path.unlink(missing_ok=True)

        t_key = transcript_key(record.original_name)
        self.store.put(t_key, result.text, content_type=TEXT_CONTENT_TYPE)
        self.repo.set_transcript_key(record, t_key)
        logger.info("[retranscribe] id=%s provider=%s key=%s", record.id, result.provider, t_key)
        return RetranscribeResult(
            transcript_key=t_key,
            transcript_url=self.store.signed_url(t_key),
            provider=result.provider,
        )


class FileQueryService:
    """Lecture des fichiers d'un utilisateur : liste + URLs signées, transcription en clair, révision."""

    def __init__(
        self,
        *,
        settings: Settings,
        repo: FileRecordRepository,
        store: ObjectStore,
        max_workers: int = 8,
    ):
        self.settings = settings
        self.repo = repo
        self.store = store
        self.max_workers = max_workers

    def list_for_owner(self, owner_id: int) -> List[FileOut]:
        if not self.settings.S3_BUCKET:
            raise ConfigurationError("Server not configured: S3_BUCKET missing")
        records = self.repo.list_for_owner(owner_id, limit=LIST_LIMIT)
        if not records:
            return []
        # signatures indépendantes : en parallèle
        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="sign") as pool:
            urls = list(pool.map(self._sign_pair, records))

        return [
            FileOut(
                id=r.id,
                original_name=r.original_name,
                status=FileStatus(r.status).value,
                has_pii=r.has_pii,
                has_pci=r.has_pci,
                encrypted=r.encrypted,
                created_at=r.created_at,
                processed_url=processed_url,
                transcript_url=transcript_url,
            )
            for r, (processed_url, transcript_url) in zip(records, urls)
        ]

    def _sign_pair(self, record: FileRecord) -> Tuple[Optional[str], Optional[str]]:
        return self._sign(record.processed_key), self._sign(record.transcript_key)

    def _sign(self, key: Optional[str]) -> Optional[str]:
        if not key:
            return None
        try:
            return self.store.signed_url(key)
        except StorageError as e:
            # la métadonnée reste listée, sans URL
            logger.warning("[files] %s", e)
            return None

    def read_transcript(self, file_id: int, *, owner_id: int) -> str:
        record = get_owned_record(self.repo, file_id, owner_id)
        if not record.transcript_key:
            raise RecordNotFound("Transcript not available")

        raw = self.store.get(record.transcript_key)
        if not record.encrypted:
            return raw.decode("utf-8")
        key, iv = key_material(record)
        try:
            return crypto.decrypt_text(key, iv, raw.decode("ascii"))
        except ValueError as e:
            raise StorageError("Cannot decrypt transcript") from e

    def save_revision(self, file_id: int, *, owner_id: int, text: str) -> Tuple[str, str]:
        record = get_owned_record(self.repo, file_id, owner_id)
        if not record.transcript_key:
            raise ValidationError("Transcript not available to revise")

        if record.encrypted:
            key, iv = key_material(record)
            body = crypto.encrypt_text(key, iv, text)
        else:
            body = text

        revised_key = revised_transcript_key(record.transcript_key)
        self.store.put(revised_key, body, content_type=TEXT_CONTENT_TYPE)
        return revised_key, self.store.signed_url(revised_key)
