import logging
from typing import Any, Generic, List, Optional, TypeVar

from pydantic import BaseModel
from sqlalchemy import Table, text
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import Result
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from chat_service.database import Base
from chat_service.errors import PersistenceError

ModelType = TypeVar("ModelType", bound=Base)
PydanticType = TypeVar("PydanticType", bound=BaseModel)

logger = logging.getLogger(__name__)


def _log_failure(message: str, error: SQLAlchemyError) -> None:
    # Constraint violations are expected on some paths and handled by callers
    if isinstance(error, IntegrityError):
        logger.debug("%s: %s", message, error)
    else:
        logger.error(message, exc_info=True)


class BaseRepository(Generic[ModelType, PydanticType]):
    """Generic SQLAlchemy repository with common read and write helpers.

    Every statement goes through ``_execute`` so driver errors reach the
    service layer as ``PersistenceError`` and the session is rolled back.
    Each mutating repository call commits its own unit of work.
    """

    def __init__(self, db: AsyncSession, model_class: Any):
        self.db = db
        self.model_class = model_class

    async def get_by_id(self, id: str) -> Optional[PydanticType]:
        """Get a single record by ID."""
        query = select(self.model_class).where(self.model_class.id == id)
        db_model = await self._scalar(query)
        return self._to_pydantic(db_model) if db_model else None

    async def _create(self, db_model: ModelType) -> PydanticType:
        """Create a new record."""
        self.db.add(db_model)
        await self._commit()
        try:
            await self.db.refresh(db_model)
        except SQLAlchemyError as e:
            raise PersistenceError(str(e)) from e
        return self._to_pydantic(db_model)

    async def ping(self) -> bool:
        result = await self._execute(text("SELECT 1"))
        return result.scalar() == 1

    async def _execute(self, statement: Any, params: Any = None) -> Result:
        try:
            if params is None:
                return await self.db.execute(statement)
            return await self.db.execute(statement, params)
        except SQLAlchemyError as e:
            _log_failure("Database statement failed", e)
            await self.db.rollback()
            raise PersistenceError(str(e)) from e

    async def _commit(self) -> None:
        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            _log_failure("Database commit failed", e)
            await self.db.rollback()
            raise PersistenceError(str(e)) from e

    async def _scalar(self, query: Any) -> Any:
        # Core writes bypass the identity map, so always reload attributes
        result = await self._execute(
            query.execution_options(populate_existing=True)
        )
        return result.scalars().first()

    async def _scalars(self, query: Any) -> List[Any]:
        result = await self._execute(
            query.execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    def _insert(self, table: Table) -> Any:
        """Dialect-specific INSERT so ON CONFLICT clauses are available."""
        if self.db.get_bind().dialect.name == "postgresql":
            return postgresql.insert(table)
        return sqlite.insert(table)

    def _to_pydantic(self, db_model: Any) -> PydanticType:
        """Convert SQLAlchemy model to Pydantic model.

        This should be overridden in subclasses for specific conversion logic.
        """
        raise NotImplementedError
