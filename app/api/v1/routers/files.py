from typing import Optional

from fastapi import APIRouter, Depends, Path
from fastapi.responses import PlainTextResponse

from app.api.v1.dependencies import (
    get_current_owner_id,
    get_file_query_service,
    get_intake_service,
)
from app.core.errors import PipelineError, as_http_exception
from app.features.files.schemas import (
    FileListOut,
    ReviseIn,
    ReviseOut,
    RetranscribeIn,
    RetranscribeOut,
)
from app.features.files.services import FileQueryService, IntakeService

router = APIRouter(
    prefix="/files",
    tags=["files"],
    responses={404: {"description": "Not Found"}},
)


@router.get(
    "",
    summary="Lister mes fichiers (100 derniers) avec URLs signées",
    response_model=FileListOut,
)
def list_files(
    owner_id: int = Depends(get_current_owner_id),
    svc: FileQueryService = Depends(get_file_query_service),
):
    try:
        return FileListOut(files=svc.list_for_owner(owner_id))
    except PipelineError as e:
        raise as_http_exception(e)


@router.get(
    "/{file_id}/transcript",
    summary="Lire la transcription en clair (déchiffrée si besoin)",
    response_class=PlainTextResponse,
)
def get_transcript(
    file_id: int = Path(..., ge=1),
    owner_id: int = Depends(get_current_owner_id),
    svc: FileQueryService = Depends(get_file_query_service),
):
    try:
        text = svc.read_transcript(file_id, owner_id=owner_id)
    except PipelineError as e:
        raise as_http_exception(e)
    return PlainTextResponse(text, media_type="text/plain; charset=utf-8")


@router.post(
    "/{file_id}/revise",
    summary="Enregistrer une transcription corrigée (completed/revised-...)",
    response_model=ReviseOut,
)
def revise_transcript(
    payload: ReviseIn,
    file_id: int = Path(..., ge=1),
    owner_id: int = Depends(get_current_owner_id),
    svc: FileQueryService = Depends(get_file_query_service),
):
    try:
        key, url = svc.save_revision(file_id, owner_id=owner_id, text=payload.text)
    except PipelineError as e:
        raise as_http_exception(e)
    return ReviseOut(revised_transcript_key=key, revised_transcript_url=url)


@router.post(
    "/{file_id}/retranscribe",
    summary="Relancer la transcription (refusé pour les fichiers chiffrés)",
    response_model=RetranscribeOut,
)
def retranscribe(
    payload: Optional[RetranscribeIn] = None,
    file_id: int = Path(..., ge=1),
    owner_id: int = Depends(get_current_owner_id),
    intake: IntakeService = Depends(get_intake_service),
):
    try:
        result = intake.retranscribe(file_id, owner_id=owner_id, provider=payload.provider if payload else "auto")
    except PipelineError as e:
        raise as_http_exception(e)
    return RetranscribeOut(
        transcript_key=result.transcript_key,
        transcript_url=result.transcript_url,
        provider=result.provider,
    )
