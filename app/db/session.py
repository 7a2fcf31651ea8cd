"""
➡️ But : Configurer la base et gérer les sessions de base de données.

build_engine(settings) : connexion à la base (SQLite par défaut, Postgres possible via DATABASE_URL).

init_db(engine) : crée les tables à partir des modèles SQLModel.

get_session() : dépendance FastAPI qui ouvre une session sur l'engine de l'app, la fournit aux routes, puis la ferme proprement.

🔹 Avantages :

Un seul endroit pour gérer les connexions DB.

Réutilisable par injection (Depends(get_session)).
"""

from typing import Dict, Any

from fastapi import Request
from sqlalchemy.engine import Engine
from sqlmodel import SQLModel, create_engine, Session

# Import all models for creating all tables
from app.db.models.files import FileRecord  # noqa: F401

from app.core.config import Settings


def build_engine(settings: Settings) -> Engine:
    url = settings.DATABASE_URL
    assert url, "DATABASE_URL must be set"

    is_sqlite = url.startswith("sqlite:")

    connect_args: Dict[str, Any] = {}
    if is_sqlite:
        # Requis pour SQLite quand utilisé dans un app serveur (multi-threads)
        connect_args["check_same_thread"] = False

    # echo seulement en dev pour ne pas polluer les logs en prod
    return create_engine(
        url,
        echo=(settings.ENV == "dev"),
        connect_args=connect_args,
        pool_pre_ping=not is_sqlite,  # ping utile pour Postgres/MySQL ; inutile pour SQLite
    )


def init_db(engine: Engine) -> None:
    """
    Crée les tables si elles n'existent pas (usage dev/demo).
    En prod avec Alembic, préfère des migrations.
    """
    SQLModel.metadata.create_all(engine)


def get_session(request: Request):
    """
    Dépendance FastAPI : fournit une session par requête.
    Utilisation :
        def route(..., session: Session = Depends(get_session)):
            ...
    """
    with Session(request.app.state.engine) as session:
        yield session
