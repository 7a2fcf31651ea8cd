from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile, status

from app.api.v1.dependencies import get_current_owner_id, get_intake_service
from app.core.errors import PipelineError, as_http_exception
from app.features.files.schemas import UploadOut
from app.features.files.services import IntakeService

router = APIRouter(
    prefix="/upload",
    tags=["upload"],
)


@router.post(
    "",
    summary="Uploader un média (antivirus → S3 → transcription)",
    description=(
        "Reçoit un fichier audio/vidéo, le scanne, le chiffre si PII/PCI, le stocke, "
        "le transcrit puis déplace l'original vers processed/."
    ),
    status_code=status.HTTP_200_OK,
    response_model=UploadOut,
    responses={
        400: {"description": "Fichier invalide ou infecté"},
        401: {"description": "Non authentifié"},
        502: {"description": "Échec stockage ou transcription"},
        503: {"description": "Antivirus indisponible"},
    },
)
def upload_file(
    file: Optional[UploadFile] = File(None),
    has_pii: bool = Form(False, alias="hasPII"),
    has_pci: bool = Form(False, alias="hasPCI"),
    provider: str = Form("auto"),
    owner_id: int = Depends(get_current_owner_id),
    intake: IntakeService = Depends(get_intake_service),
):
    # route synchrone : FastAPI l'exécute dans son threadpool (pipeline bloquant)
    try:
        record = intake.intake(
            file.file if file else None,
            original_name=file.filename if file else None,
            owner_id=owner_id,
            has_pii=has_pii,
            has_pci=has_pci,
            provider=provider,
        )
    except PipelineError as e:
        raise as_http_exception(e)
    return UploadOut(file_id=record.id)
