from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import TypedDict
import uuid

from jose import jwt, JWTError

# ==========================================================
# 🔧 Configuration : paramètres de validation JWT
# ==========================================================
# Les comptes (inscription / login) vivent dans un autre service :
# ici on ne fait que valider l'access token et lire l'id du propriétaire.

@dataclass(frozen=True)
class JWTSettings:
    """
    Configuration des tokens JWT.

    - `secret` : clé secrète partagée avec le service de comptes
    - `issuer` : émetteur attendu
    - `algorithm` : algo de signature (HS256 recommandé)
    - `access_ttl` : durée de vie d'un access token
    """
    secret: str
    issuer: str = "transcribe-api"
    algorithm: str = "HS256"
    access_ttl: timedelta = timedelta(minutes=15)


# ==========================================================
# 🧱 Types
# ==========================================================

class DecodedToken(TypedDict, total=False):
    iss: str
    sub: str            # identifiant utilisateur
    typ: str            # "access"
    jti: str
    iat: int
    exp: int


class InvalidToken(Exception):
    pass


def _now() -> datetime:
    """Renvoie l'heure UTC actuelle."""
    return datetime.now(timezone.utc)


# ==========================================================
# 🎟️ Génération (utilisée par les outils d'admin et les tests)
# ==========================================================

def create_access_token(*, user_id: int, settings: JWTSettings) -> str:
    now = _now()
    payload: DecodedToken = {
        "iss": settings.issuer,
        "sub": str(user_id),
        "typ": "access",
        "jti": str(uuid.uuid4()),
        "iat": int(now.timestamp()),
        "exp": int((now + settings.access_ttl).timestamp()),
    }
    return jwt.encode(payload, settings.secret, algorithm=settings.algorithm)


# ==========================================================
# 🔍 Décodage / Validation
# ==========================================================

def decode_token(token: str, settings: JWTSettings) -> DecodedToken:
    """
    Décode et valide un token JWT (signature + expiration).
    Lève JWTError en cas de signature invalide ou expirée.
    """
    return jwt.decode(
        token,
        settings.secret,
        algorithms=[settings.algorithm],
        options={"verify_aud": False},
    )  # type: ignore[return-value]


def owner_id_from_token(token: str, settings: JWTSettings) -> int:
    """Retourne l'id du propriétaire (claim `sub`) d'un access token valide."""
    try:
        decoded = decode_token(token, settings)
    except JWTError as e:
        raise InvalidToken("Invalid token") from e
    if decoded.get("typ", "access") != "access":
        raise InvalidToken("Invalid token type")
    try:
        return int(decoded["sub"])
    except (KeyError, ValueError) as e:
        raise InvalidToken("Invalid token subject") from e
