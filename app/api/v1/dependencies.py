"""
➡️ But : Centraliser les dépendances réutilisables des routes.

Exemples :

get_settings() : la config unique, construite au démarrage et posée sur app.state.

get_intake_service() : assemble repository + object store + scanner + orchestrateur.

get_current_owner_id() : lit le bearer token et renvoie l'id du propriétaire.

🔹 Avantages :

Routes plus propres (pas de code dupliqué).

Facile à remplacer dans les tests (app.dependency_overrides).
"""

from typing import Optional

from fastapi import Depends, HTTPException, Request, Security, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlmodel import Session

from app.core.config import Settings
from app.db.session import get_session
from app.db.repositories.files import FileRecordRepository
from app.features.files.services import FileQueryService, IntakeService
from app.features.transcription.services import TranscriptionOrchestrator
from app.security.tokens import InvalidToken, owner_id_from_token
from app.utils.clamd import ClamdScanner
from app.utils.s3 import ObjectStore


# -----------------------------
# Settings
# -----------------------------
def get_settings(request: Request) -> Settings:
    return request.app.state.settings


# -----------------------------
# Collaborateurs externes
# -----------------------------
def get_object_store(settings: Settings = Depends(get_settings)) -> ObjectStore:
    return ObjectStore.from_settings(settings)


def get_scanner(settings: Settings = Depends(get_settings)) -> Optional[ClamdScanner]:
    if settings.SKIP_VIRUS_SCAN:
        return None
    return ClamdScanner(
        settings.CLAMAV_HOST,
        settings.CLAMAV_PORT,
        timeout=settings.SCAN_TIMEOUT_MS / 1000,
        log_responses=settings.LOG_SCAN_RESPONSES,
    )


def get_orchestrator(settings: Settings = Depends(get_settings)) -> TranscriptionOrchestrator:
    return TranscriptionOrchestrator.from_settings(settings)


# -----------------------------
# Repositories
# -----------------------------
def get_file_repository(session: Session = Depends(get_session)) -> FileRecordRepository:
    return FileRecordRepository(session)


# -----------------------------
# Services
# -----------------------------
def get_intake_service(
    settings: Settings = Depends(get_settings),
    repo: FileRecordRepository = Depends(get_file_repository),
    store: ObjectStore = Depends(get_object_store),
    scanner: Optional[ClamdScanner] = Depends(get_scanner),
    orchestrator: TranscriptionOrchestrator = Depends(get_orchestrator),
) -> IntakeService:
    return IntakeService(
        settings=settings,
        repo=repo,
        store=store,
        scanner=scanner,
        orchestrator=orchestrator,
    )


def get_file_query_service(
    settings: Settings = Depends(get_settings),
    repo: FileRecordRepository = Depends(get_file_repository),
    store: ObjectStore = Depends(get_object_store),
) -> FileQueryService:
    return FileQueryService(settings=settings, repo=repo, store=store)


# -----------------------------
# Authentication data
# -----------------------------
bearer_scheme = HTTPBearer(auto_error=False)


def get_current_owner_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(bearer_scheme),
    settings: Settings = Depends(get_settings),
) -> int:
    if not credentials or credentials.scheme.lower() != "bearer":
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    try:
        return owner_id_from_token(credentials.credentials, settings.jwt)
    except InvalidToken:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
