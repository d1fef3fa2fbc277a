"""
BaseService -- abstract base for all kernel services.

Responsibility:
    Provides the common constructor and the two primitives every lifecycle
    service is built on:

    * ``_lock``: load a row with ``SELECT ... FOR UPDATE`` so concurrent
      posts of the same document serialize on the row.
    * ``_compare_and_set_status``: ``UPDATE ... WHERE id = :id AND status =
      :expected``; a zero row count means another transaction moved the row
      first and raises InvalidStateError.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.

Invariants enforced:
    - Services flush within the caller's transaction and never commit or
      roll back themselves.  The application layer owns the unit of work.
"""

from abc import ABC
from typing import Generic, TypeVar
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from ledger_kernel.db.base import Base
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.lifecycle import DocumentStatus
from ledger_kernel.domain.settings import PostingSettings
from ledger_kernel.exceptions import EntityNotFoundError, InvalidStateError

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for all kernel services.

    Guarantees:
        - The service never calls ``session.commit()`` or
          ``session.rollback()``.
        - ``actor_id`` (if given) is stamped into created_by_id /
          updated_by_id of the records the service creates or edits.
    """

    entity_type: str = "Entity"

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        settings: PostingSettings | None = None,
        actor_id: UUID | None = None,
    ):
        self.session = session
        self.clock = clock or SystemClock()
        self.settings = settings or PostingSettings()
        self.actor_id = actor_id

    def _get(
        self, model: type[ModelType], entity_id: UUID, entity_type: str | None = None
    ) -> ModelType:
        entity = self.session.get(model, entity_id)
        if entity is None:
            raise EntityNotFoundError(entity_type or self.entity_type, str(entity_id))
        return entity

    def _lock(
        self, model: type[ModelType], entity_id: UUID, entity_type: str | None = None
    ) -> ModelType:
        """Load and row-lock ``entity_id``, refreshing any cached state."""
        entity = self.session.execute(
            select(model)
            .where(model.id == entity_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if entity is None:
            raise EntityNotFoundError(entity_type or self.entity_type, str(entity_id))
        return entity

    def _compare_and_set_status(
        self,
        model: type[ModelType],
        entity_id: UUID,
        expected: DocumentStatus,
        new: DocumentStatus,
        operation: str,
        **values,
    ) -> None:
        """
        Atomically move ``entity_id`` from ``expected`` to ``new``.

        Extra ``values`` (posted_at, document_number ...) are written in the
        same statement.  The identity map is synchronized with the result.

        Raises:
            InvalidStateError: the row was not in ``expected`` status.
        """
        if self.actor_id is not None and hasattr(model, "updated_by_id"):
            values.setdefault("updated_by_id", self.actor_id)
        result = self.session.execute(
            update(model)
            .where(model.id == entity_id, model.status == expected.value)
            .values(status=new.value, **values)
        )
        if result.rowcount != 1:
            current = self.session.execute(
                select(model.status).where(model.id == entity_id)
            ).scalar_one_or_none()
            raise InvalidStateError(
                self.entity_type,
                str(entity_id),
                str(getattr(current, "value", current)),
                operation,
            )

    def _stamp_created(self, entity) -> None:
        if self.actor_id is not None:
            entity.created_by_id = self.actor_id
            entity.updated_by_id = self.actor_id

    def _stamp_updated(self, entity) -> None:
        if self.actor_id is not None:
            entity.updated_by_id = self.actor_id
