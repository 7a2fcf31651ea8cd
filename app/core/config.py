"""
➡️ But : Centraliser tous les paramètres configurables (nom d'app, chemin DB, bucket, scanner, fournisseurs de transcription...).

Utilise pydantic-settings pour charger automatiquement les variables d'environnement (.env, variables système…).

L'objet Settings est construit UNE fois au démarrage (create_app) puis passé explicitement
à chaque composant : aucun service ne lit l'environnement lui-même.

    settings = get_settings()
    app = create_app(settings)


🔹 Avantages :

Plus propre que des constantes éparpillées dans le code.

Immuable (frozen) : un composant ne peut pas modifier la config d'un autre.

Facilite le passage entre environnements (dev / prod / test).
"""

from datetime import timedelta
from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings

from app.security.tokens import JWTSettings


MB = 1024 * 1024


class Settings(BaseSettings):
    # -----------------------------
    # App
    # -----------------------------
    APP_NAME: str = "Transcribe-Back"
    ENV: str = "dev"  # dev | prod | test
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False

    # -----------------------------
    # DB
    # -----------------------------
    SQLITE_PATH: str = "app.db"  # fichier SQLite
    # Si tu veux forcer une URL différente (ex: Postgres), définis DATABASE_URL dans l'env.
    DATABASE_URL: Optional[str] = None

    # -----------------------------
    # JWT / Auth (tokens émis par le service de comptes)
    # -----------------------------
    JWT_SECRET_KEY: str = "CHANGE_ME"     # ⚠️ change en prod
    JWT_ISSUER: str = "transcribe-api"
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TTL_MINUTES: int = 15

    # -----------------------------
    # Object storage (S3 / Linode / MinIO)
    # -----------------------------
    S3_BUCKET: Optional[str] = None
    S3_REGION: str = "us-east-1"
    S3_ENDPOINT: str = "https://us-east-1.linodeobjects.com"
    S3_KEY: Optional[str] = None
    S3_SECRET: Optional[str] = None
    PRESIGN_TTL_SECONDS: int = 3600

    # -----------------------------
    # Uploads
    # -----------------------------
    MAX_UPLOAD_MB: int = 500
    UPLOAD_TMP_DIR: Optional[str] = None  # None -> dossier temporaire du système

    # -----------------------------
    # Antivirus (clamd)
    # -----------------------------
    CLAMAV_HOST: str = "clamd"
    CLAMAV_PORT: int = 3310
    SKIP_VIRUS_SCAN: bool = False
    SCAN_TIMEOUT_MS: int = 60000
    LOG_SCAN_RESPONSES: bool = False

    # -----------------------------
    # Transcription : politique commune
    # -----------------------------
    SKIP_TRANSCRIPTION: bool = False
    FAIL_ON_TRANSCRIPTION_ERROR: bool = False
    TRANSCRIPTION_TIMEOUT_MS: int = 120000   # par tentative
    TRANSCRIPTION_RETRIES: int = 3           # retries après la 1re tentative
    RETRY_BASE_DELAY_MS: int = 1000
    RETRY_MAX_DELAY_MS: int = 15000

    # OpenAI Whisper (fournisseur limité en taille)
    OPENAI_API_KEY: Optional[str] = None
    OPENAI_BASE_URL: Optional[str] = None
    OPENAI_ORG: Optional[str] = None
    WHISPER_MODEL: str = "whisper-1"
    WHISPER_MAX_MB: float = 25

    # Deepgram (REST, octets bruts)
    DEEPGRAM_API_KEY: Optional[str] = None
    DEEPGRAM_BASE_URL: str = "https://api.deepgram.com"
    DEEPGRAM_MODEL: str = "nova-2"
    DEEPGRAM_LANGUAGE: str = ""
    DEEPGRAM_SMART_FORMAT: bool = True
    DEEPGRAM_PUNCTUATE: bool = True

    # AssemblyAI (upload + job + polling)
    ASSEMBLYAI_API_KEY: Optional[str] = None
    ASSEMBLYAI_BASE_URL: str = "https://api.assemblyai.com"
    ASSEMBLYAI_MODEL: str = "universal"
    ASSEMBLYAI_TIMEOUT_MS: int = 300000      # deadline globale du polling
    ASSEMBLYAI_POLL_MS: int = 3000

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": True,
        "frozen": True,
    }

    # -----------------------------
    # Post-process values
    # -----------------------------
    def model_post_init(self, __context): # appelée automatiquement
        # DATABASE_URL par défaut depuis SQLITE_PATH si non fourni
        if not self.DATABASE_URL:
            object.__setattr__(self, "DATABASE_URL", f"sqlite:///{self.SQLITE_PATH}")

        # clamp : l'API AssemblyAI n'aime pas qu'on la sollicite plus vite
        if self.ASSEMBLYAI_POLL_MS < 1500:
            object.__setattr__(self, "ASSEMBLYAI_POLL_MS", 1500)

        if self.TRANSCRIPTION_RETRIES < 0:
            object.__setattr__(self, "TRANSCRIPTION_RETRIES", 0)

    # -----------------------------
    # Helpers
    # -----------------------------
    @property
    def whisper_max_bytes(self) -> int:
        return int(self.WHISPER_MAX_MB * MB)

    @property
    def max_upload_bytes(self) -> int:
        return self.MAX_UPLOAD_MB * MB

    @property
    def jwt(self) -> JWTSettings:
        return JWTSettings(
            secret=self.JWT_SECRET_KEY,
            issuer=self.JWT_ISSUER,
            algorithm=self.JWT_ALGORITHM,
            access_ttl=timedelta(minutes=self.ACCESS_TTL_MINUTES),
        )

    def missing_storage_config(self) -> Optional[str]:
        """Retourne un message si le bucket ou les credentials S3 manquent, sinon None."""
        if _blank(self.S3_BUCKET):
            return "S3_BUCKET not configured"
        if _blank(self.S3_KEY) or _blank(self.S3_SECRET):
            return "S3 credentials not configured (set S3_KEY/S3_SECRET)"
        return None


def _blank(value: Optional[str]) -> bool:
    return not value or value.strip() == "" or value.strip().lower() in ("null", "undefined")


@lru_cache
def get_settings() -> Settings:
    """Instance unique, construite au démarrage du process."""
    return Settings()
