"""Diagnostics des fournisseurs de transcription (connectivité / configuration)."""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from app.api.v1.dependencies import get_orchestrator
from app.features.transcription.services import TranscriptionOrchestrator

router = APIRouter(
    prefix="/diag",
    tags=["diag"],
)


@router.get("/openai", summary="Vérifier la clé OpenAI (liste des modèles)")
def diag_openai(orchestrator: TranscriptionOrchestrator = Depends(get_orchestrator)):
    whisper = orchestrator.get("openai")
    if whisper is None or not whisper.is_configured():
        return JSONResponse(status_code=400, content={"ok": False, "error": "OPENAI_API_KEY not set"})
    try:
        # requête légère pour vérifier connectivité + auth
        whisper.client().models.list()
    except Exception as e:
        return JSONResponse(status_code=502, content={"ok": False, "error": str(e) or "Connectivity/auth failed"})
    return {"ok": True}


def _configured_only(orchestrator: TranscriptionOrchestrator, name: str, setting: str):
    provider = orchestrator.get(name)
    if provider is None or not provider.is_configured():
        return JSONResponse(status_code=400, content={"ok": False, "error": f"{setting} not set"})
    # pas d'appel réseau : on confirme seulement la configuration
    return {"ok": True, "configured": True}


@router.get("/deepgram", summary="Vérifier la configuration Deepgram")
def diag_deepgram(orchestrator: TranscriptionOrchestrator = Depends(get_orchestrator)):
    return _configured_only(orchestrator, "deepgram", "DEEPGRAM_API_KEY")


@router.get("/assemblyai", summary="Vérifier la configuration AssemblyAI")
def diag_assemblyai(orchestrator: TranscriptionOrchestrator = Depends(get_orchestrator)):
    return _configured_only(orchestrator, "assemblyai", "ASSEMBLYAI_API_KEY")
