"""
➡️ But : assembler toutes les pièces du puzzle.

create_app(settings) crée l'instance FastAPI et :

construit la config UNE fois et la pose sur app.state (aucun composant ne relit l'env),

configure le logging, CORS, titre, version, tags, schéma OpenAPI,

crée l'engine DB et les tables au démarrage,

inclut les routers (/api/v1/upload, /api/v1/files, /api/v1/diag).

🔹 Avantages :

Point unique d'exécution : uvicorn app.main:app --reload.

Les tests construisent leur propre app avec leur propre Settings.
"""

from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.core.config import Settings, get_settings
from app.core.logging import setup_logging
from app.core.openapi import custom_openapi
from app.db.session import build_engine, init_db

from app.api.v1.routers import diag, files, upload

import uvicorn


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()
    setup_logging(settings.LOG_LEVEL, json_format=settings.LOG_JSON)

    app = FastAPI(
        title=settings.APP_NAME,
        version="0.1.0",
        openapi_tags=[
            {"name": "upload", "description": "Intake : antivirus, chiffrement, stockage, transcription"},
            {"name": "files", "description": "Fichiers de l'utilisateur, transcriptions, révisions"},
            {"name": "diag", "description": "Diagnostics des fournisseurs de transcription"},
        ],
    )
    app.state.settings = settings
    app.state.engine = build_engine(settings)

    # CORS (ajustez selon vos besoins)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"], allow_credentials=True,
        allow_methods=["*"], allow_headers=["*"],
    )

    # Routers
    app.include_router(upload.router, prefix="/api/v1")
    app.include_router(files.router, prefix="/api/v1")
    app.include_router(diag.router, prefix="/api/v1")

    @app.get("/api/health", tags=["diag"])
    def health():
        return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}

    # Génération du schéma OpenAPI custom
    app.openapi = lambda: custom_openapi(app)

    # Démarrage
    @app.on_event("startup")
    def on_startup():
        init_db(app.state.engine)

    return app


app = create_app()

if __name__ == "__main__":
    settings = get_settings()
    uvicorn.run("app.main:app", host="0.0.0.0", port=8080, reload=(settings.ENV == "dev")) # http://localhost:8080
