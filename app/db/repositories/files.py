from typing import Optional, Sequence

from sqlmodel import select

from app.core.errors import InvalidTransition
from app.db.models.base import utcnow
from app.db.models.files import ALLOWED_TRANSITIONS, FileRecord, FileStatus
from app.db.repositories.base import BaseRepository


class FileRecordRepository(BaseRepository[FileRecord]):
    """CRUD FileRecord + transitions de statut contrôlées."""
    model = FileRecord

    def get_for_owner(self, file_id: int, owner_id: int) -> Optional[FileRecord]:
        return self.session.exec(
            select(self.model).where(self.model.id == file_id, self.model.owner_id == owner_id)
        ).first()

    def list_for_owner(self, owner_id: int, *, limit: int = 100) -> Sequence[FileRecord]:
        """Fichiers d'un utilisateur, du plus récent au plus ancien."""
        stmt = (
            select(self.model)
            .where(self.model.owner_id == owner_id)
            .order_by(self.model.created_at.desc(), self.model.id.desc())
            .limit(limit)
        )
        return self.session.exec(stmt).all()

    # ---------- Transitions ----------

    def transition(self, record: FileRecord, new_status: FileStatus, **changes) -> FileRecord:
        current = FileStatus(record.status)
        if new_status not in ALLOWED_TRANSITIONS[current]:
            raise InvalidTransition(f"Illegal status change {current.value} -> {new_status.value}")

        if new_status is FileStatus.COMPLETED:
            transcript = changes.get("transcript_key", record.transcript_key)
            processed = changes.get("processed_key", record.processed_key)
            if not transcript or not processed:
                raise InvalidTransition("A completed file needs both a transcript and a processed key")
        if new_status is FileStatus.FAILED and not changes.get("error"):
            raise InvalidTransition("A failed file needs an error message")

        return self.update(record, status=new_status, updated_at=utcnow(), **changes)

    def mark_processing(self, record: FileRecord, **changes) -> FileRecord:
        return self.transition(record, FileStatus.PROCESSING, **changes)

    def mark_completed(self, record: FileRecord, *, transcript_key: str, processed_key: str) -> FileRecord:
        return self.transition(
            record,
            FileStatus.COMPLETED,
            transcript_key=transcript_key,
            processed_key=processed_key,
        )

    def mark_failed(self, record: FileRecord, *, error: str) -> FileRecord:
        return self.transition(record, FileStatus.FAILED, error=error or "Unknown error")

    def set_transcript_key(self, record: FileRecord, transcript_key: str) -> FileRecord:
        """Seule modification permise après un statut terminal (re-transcription)."""
        return self.update(record, transcript_key=transcript_key, updated_at=utcnow())
