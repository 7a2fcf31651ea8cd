from typing import Any, Generic, Optional, Type, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import SQLModel, Session, select, func

from app.core.errors import StorageError

# Type générique pour le modèle (FileRecord, ...)
ModelT = TypeVar("ModelT", bound=SQLModel)


class BaseRepository(Generic[ModelT]):
    """
    Repository de base pour les opérations CRUD standards.

    👉 Ne contient aucune logique métier.
    👉 Gère la persistance générique : create, get, update, count.
    👉 Les erreurs SQL remontent en StorageError (rollback fait avant).
    👉 Les repositories concrets définissent `model = MaClasseSQLModel`.
    """

    model: Type[ModelT]

    def __init__(self, session: Session):
        self.session = session

    # ---------- READ ----------

    def count(self) -> int:
        return self.session.exec(select(func.count(self.model.id))).one()

    def get(self, id_: Any) -> Optional[ModelT]:
        """Retourne un enregistrement par son identifiant, ou None."""
        return self.session.get(self.model, id_)

    # ---------- WRITE ----------

    def create(self, *, commit: bool = True, **fields) -> ModelT:
        """
        Crée et persiste un nouvel enregistrement.
        commit=False permet d'orchestrer une transaction globale au niveau service.
        """
        entity = self.model(**fields)
        self.session.add(entity)
        self._flush_or_commit(entity, commit)
        return entity

    def update(self, entity: ModelT, *, commit: bool = True, **changes) -> ModelT:
        for key, value in changes.items():
            setattr(entity, key, value)
        self.session.add(entity)
        self._flush_or_commit(entity, commit)
        return entity

    # ---------- helpers ----------

    def _flush_or_commit(self, entity: Optional[ModelT], commit: bool) -> None:
        try:
            if commit:
                self.session.commit()
                if entity is not None:
                    self.session.refresh(entity)
            else:
                # flush pour obtenir l'ID sans commit
                self.session.flush()
        except SQLAlchemyError as e:
            self.session.rollback()
            raise StorageError(f"Record store write failed: {e.__class__.__name__}") from e
