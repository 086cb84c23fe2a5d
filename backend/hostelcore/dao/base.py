"""
Base Data Access Object (DAO) class.

WHY: The DAO pattern keeps SQL out of the access-resolution and domain
services, so the scope resolver and guard can be tested against a real
schema without any HTTP or business wiring.
"""

from typing import Generic, TypeVar, Type, Optional, List, Any
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from hostelcore.models.base import Base

# Type variable for model class
ModelType = TypeVar("ModelType", bound=Base)


class BaseDAO(Generic[ModelType]):
    """
    Base Data Access Object providing CRUD operations for all models.

    Deliberately has no delete(): memberships, organizations, hostels and
    domain records are soft-deactivated, never removed. DAOs that need a hard
    delete (parent links) define it themselves.

    Type Parameters:
        ModelType: The SQLAlchemy model class this DAO manages
    """

    def __init__(self, model: Type[ModelType], session: AsyncSession):
        """
        Initialize DAO with model class and database session.

        Args:
            model: The SQLAlchemy model class
            session: Async database session
        """
        self.model = model
        self.session = session

    async def create(self, **kwargs: Any) -> ModelType:
        """
        Create a new record.

        Args:
            **kwargs: Field values for the new record

        Returns:
            The created model instance with database-generated fields populated

        Raises:
            IntegrityError: If unique or check constraints are violated
        """
        instance = self.model(**kwargs)
        self.session.add(instance)
        await self.session.flush()  # Flush to get auto-generated fields
        await self.session.refresh(instance)
        return instance

    async def get_by_id(self, id: int) -> Optional[ModelType]:
        """
        Retrieve a single record by primary key.

        Returns:
            The model instance if found, None otherwise
        """
        result = await self.session.execute(select(self.model).where(self.model.id == id))
        return result.scalar_one_or_none()

    async def get_all(self, skip: int = 0, limit: int = 100, **filters: Any) -> List[ModelType]:
        """
        Retrieve multiple records with optional pagination and filtering.

        Args:
            skip: Number of records to skip (for pagination)
            limit: Maximum number of records to return
            **filters: Field name to value filters (e.g., organization_id=1)

        Returns:
            List of model instances matching the filters
        """
        query = select(self.model)

        for field, value in filters.items():
            if hasattr(self.model, field):
                query = query.where(getattr(self.model, field) == value)

        query = query.order_by(self.model.id).offset(skip).limit(limit)

        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def update(self, id: int, **kwargs: Any) -> Optional[ModelType]:
        """
        Update an existing record.

        Args:
            id: Primary key of the record to update
            **kwargs: Fields to update

        Returns:
            Updated model instance if found, None otherwise
        """
        result = await self.session.execute(
            update(self.model).where(self.model.id == id).values(**kwargs).returning(self.model)
        )
        instance = result.scalar_one_or_none()
        if instance:
            await self.session.refresh(instance)
        return instance

    async def count(self, **filters: Any) -> int:
        """Count records matching filters."""
        query = select(func.count()).select_from(self.model)

        for field, value in filters.items():
            if hasattr(self.model, field):
                query = query.where(getattr(self.model, field) == value)

        result = await self.session.execute(query)
        return int(result.scalar_one())

    async def get_by_org(self, organization_id: int, skip: int = 0, limit: int = 100) -> List[ModelType]:
        """
        Retrieve records for a specific organization.

        Raises:
            AttributeError: If the model doesn't carry an organization_id
        """
        if not hasattr(self.model, "organization_id"):
            raise AttributeError(
                f"{self.model.__name__} is not a tenant-scoped model (no organization_id field)"
            )

        return await self.get_all(skip=skip, limit=limit, organization_id=organization_id)

    async def get_by_id_and_org(self, id: int, organization_id: int) -> Optional[ModelType]:
        """
        Retrieve a record by ID, ensuring it belongs to the specified organization.

        WHY: Defense in depth beneath the access guard; a tenant-scoped lookup
        can never return another organization's row.

        Raises:
            AttributeError: If the model doesn't carry an organization_id
        """
        if not hasattr(self.model, "organization_id"):
            raise AttributeError(
                f"{self.model.__name__} is not a tenant-scoped model (no organization_id field)"
            )

        result = await self.session.execute(
            select(self.model).where(
                self.model.id == id,
                self.model.organization_id == organization_id,
            )
        )
        return result.scalar_one_or_none()
