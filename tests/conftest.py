from pathlib import Path
from typing import Callable

import pytest
from sqlmodel import Session

from app.core.config import MB, Settings
from app.db.repositories.files import FileRecordRepository
from app.db.session import build_engine, init_db
from app.utils.s3 import ObjectStore

from fakes import FakeS3Client


@pytest.fixture
def make_settings(tmp_path: Path) -> Callable[..., Settings]:
    # valeurs explicites : l'environnement de la machine de test ne doit rien configurer
    def _make(**overrides) -> Settings:
        values = dict(
            _env_file=None,
            ENV="test",
            LOG_LEVEL="WARNING",
            DATABASE_URL=f"sqlite:///{tmp_path / 'test.db'}",
            JWT_SECRET_KEY="test-secret",
            S3_BUCKET="media-bucket",
            S3_KEY="key",
            S3_SECRET="secret",
            SKIP_VIRUS_SCAN=True,
            SKIP_TRANSCRIPTION=False,
            FAIL_ON_TRANSCRIPTION_ERROR=False,
            OPENAI_API_KEY=None,
            DEEPGRAM_API_KEY=None,
            ASSEMBLYAI_API_KEY=None,
            UPLOAD_TMP_DIR=str(tmp_path),
        )
        values.update(overrides)
        return Settings(**values)

    return _make


@pytest.fixture
def settings(make_settings) -> Settings:
    return make_settings()


@pytest.fixture
def session(settings: Settings):
    engine = build_engine(settings)
    init_db(engine)
    with Session(engine) as s:
        yield s
    engine.dispose()


@pytest.fixture
def repo(session: Session) -> FileRecordRepository:
    return FileRecordRepository(session)


@pytest.fixture
def s3_client() -> FakeS3Client:
    return FakeS3Client()


@pytest.fixture
def store(s3_client: FakeS3Client) -> ObjectStore:
    return ObjectStore(s3_client, bucket="media-bucket", presign_ttl=3600)


@pytest.fixture
def media_file(tmp_path: Path) -> Callable[..., Path]:
    """Écrit un média de la taille demandée (fichier creux au-delà de 1 Mo)."""

    def _make(name: str = "talk.mp3", size: int = 2048) -> Path:
        path = tmp_path / "media" / name
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "wb") as fh:
            if size <= MB:
                fh.write(b"ID3" + b"\x01" * max(0, size - 3))
            else:
                fh.write(b"ID3")
                fh.truncate(size)
        return path

    return _make
