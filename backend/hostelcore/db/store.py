"""
Transactional store.

WHAT: Thin wrapper over an AsyncSession that gives services an atomic
unit of work.

WHY: Every multi-row invariant (membership uniqueness plus room occupancy,
signup creating user + organization + hostel + owner membership) must apply
completely or not at all. Nothing partial is ever committed, so no
compensating logic is needed.

HOW: transaction() opens a SAVEPOINT with begin_nested(). This works both
for a fresh session (the outer transaction autobegins) and inside a request
session that already has work pending. IntegrityError raised by the database
inside the block is translated into ConstraintViolation after the savepoint
has been rolled back.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from hostelcore.core.exceptions import ConstraintViolation


logger = logging.getLogger(__name__)


class Store:
    """
    Unit-of-work boundary for the access core.

    Example:
        store = Store(session)
        async with store.transaction():
            await user_dao.create(...)
            await org_dao.create(...)
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncSession]:
        """
        Run the enclosed block atomically.

        Raises:
            ConstraintViolation: If a unique/check/foreign-key constraint fails
        """
        try:
            async with self.session.begin_nested():
                yield self.session
        except IntegrityError as e:
            logger.info("Transaction rolled back on constraint failure: %s", e.orig)
            raise ConstraintViolation(
                message="Operation violates a data constraint",
                constraint=str(e.orig),
            ) from e

    async def release(self) -> None:
        """
        Finish the session's open transaction before slow external I/O.

        WHY: Tenancy lookups and guard checks autobegin a transaction. Blob
        uploads can take seconds, and no connection or snapshot may be held
        across them. The work done so far is committed; whatever follows
        starts a fresh transaction.

        Raises:
            RuntimeError: If called inside transaction(), where committing
                would cut an atomic block in half
        """
        if self.session.in_nested_transaction():
            raise RuntimeError("Cannot release the session inside a savepoint")
        if self.session.in_transaction():
            await self.session.commit()
