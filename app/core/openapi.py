"""
➡️ But : Personnaliser la documentation Swagger/OpenAPI.

custom_openapi(app) complète le schéma généré par FastAPI avec les conventions
du pipeline (namespaces du bucket, statuts, erreurs) et le schéma d'auth bearer.
"""

from fastapi.openapi.utils import get_openapi

DESCRIPTION = (
    "API de transcription : upload → antivirus → (chiffrement) → S3 → transcription.\n\n"
    "### Conventions\n"
    "- Authentification : `Authorization: Bearer <access token>` (claim `sub` = id du propriétaire).\n"
    "- Bucket : `upload/` (staging), `processed/` (original traité), `completed/` (transcriptions).\n"
    "- Statuts d'un fichier : `uploaded` → `processing` → `completed` | `failed`.\n"
    "- Fournisseurs : `auto` (openai → deepgram → assemblyai) ou un nom explicite, sans repli.\n"
    "- Erreurs : `{\"detail\": \"raison courte\"}`.\n"
    "- Toutes les heures sont en UTC.\n"
)


def custom_openapi(app):
    if app.openapi_schema:
        return app.openapi_schema
    schema = get_openapi(
        title=app.title,
        version=app.version,
        description=DESCRIPTION,
        routes=app.routes,
        tags=app.openapi_tags,
    )
    schema.setdefault("components", {}).setdefault("securitySchemes", {})["bearerAuth"] = {
        "type": "http",
        "scheme": "bearer",
        "bearerFormat": "JWT",
    }
    app.openapi_schema = schema
    return app.openapi_schema
