"""Backing document store.

The order store is written purely against the four primitives below
(create, update, list-all, delete-all by collection name), so any store
that can serialize id allocation and detect stale writes can stand in
for the SQL implementation.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from posengine.core.exceptions import ConcurrentModificationError, PersistenceError
from posengine.models.document import Document, Sequence

logger = logging.getLogger(__name__)

ORDERS = "orders"
MENU_ITEMS = "menuItems"
CASHIERS = "cashiers"


class DocumentStore(ABC):
    """Record store keyed by collection name and integer id.

    Documents are plain dicts. Every returned document carries its ``id``
    and ``version`` keys.
    """

    @abstractmethod
    async def create(self, collection: str, data: Dict[str, Any]) -> Dict[str, Any]:
        """Insert a document, assigning the collection's next sequential id."""

    @abstractmethod
    async def update(
        self,
        collection: str,
        doc_id: int,
        data: Dict[str, Any],
        expected_version: Optional[int] = None,
    ) -> Optional[Dict[str, Any]]:
        """Replace a document's body.

        Returns None when the document does not exist. Raises
        ConcurrentModificationError when *expected_version* is given and
        the stored version differs.
        """

    @abstractmethod
    async def list_all(self, collection: str) -> List[Dict[str, Any]]:
        """Return every document of a collection."""

    @abstractmethod
    async def delete_all(self, collection: str) -> int:
        """Delete every document of a collection; returns the count removed."""


class SqlDocumentStore(DocumentStore):
    """DocumentStore backed by SQLAlchemy.

    Blocking session work runs in a worker thread so terminals never stall
    their event loop on store I/O.
    """

    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    async def create(self, collection: str, data: Dict[str, Any]) -> Dict[str, Any]:
        return await asyncio.to_thread(self._create, collection, data)

    async def update(
        self,
        collection: str,
        doc_id: int,
        data: Dict[str, Any],
        expected_version: Optional[int] = None,
    ) -> Optional[Dict[str, Any]]:
        return await asyncio.to_thread(self._update, collection, doc_id, data, expected_version)

    async def list_all(self, collection: str) -> List[Dict[str, Any]]:
        return await asyncio.to_thread(self._list_all, collection)

    async def delete_all(self, collection: str) -> int:
        return await asyncio.to_thread(self._delete_all, collection)

    # ------------------------------------------------------------------
    # Blocking implementations
    # ------------------------------------------------------------------

    def _create(self, collection: str, data: Dict[str, Any]) -> Dict[str, Any]:
        session = self._session_factory()
        try:
            doc_id = self._next_id(session, collection)
            body = {**data, "id": doc_id}
            doc = Document(collection=collection, doc_id=doc_id, data=body, version=1)
            session.add(doc)
            session.commit()
            return _with_meta(body, doc_id, 1)
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"Create in '{collection}' failed: {e}")
            raise PersistenceError(f"Could not create document in '{collection}'") from e
        finally:
            session.close()

    def _update(
        self,
        collection: str,
        doc_id: int,
        data: Dict[str, Any],
        expected_version: Optional[int],
    ) -> Optional[Dict[str, Any]]:
        session = self._session_factory()
        try:
            doc = session.get(Document, (collection, doc_id))
            if doc is None:
                return None
            doc.check_version(expected_version)
            stored_version = doc.version
            body = {**data, "id": doc_id}
            # Conditional write: losing a race between read and commit is
            # reported as a conflict rather than silently overwritten.
            result = session.execute(
                update(Document)
                .where(
                    Document.collection == collection,
                    Document.doc_id == doc_id,
                    Document.version == stored_version,
                )
                .values(data=body, version=stored_version + 1)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                session.rollback()
                current = session.get(Document, (collection, doc_id), populate_existing=True)
                raise ConcurrentModificationError(
                    collection, doc_id, stored_version, current.version if current else -1
                )
            session.commit()
            return _with_meta(body, doc_id, stored_version + 1)
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"Update of {collection}/{doc_id} failed: {e}")
            raise PersistenceError(f"Could not update {collection}/{doc_id}") from e
        finally:
            session.close()

    def _list_all(self, collection: str) -> List[Dict[str, Any]]:
        session = self._session_factory()
        try:
            rows = session.execute(
                select(Document).where(Document.collection == collection).order_by(Document.doc_id)
            ).scalars().all()
            return [_with_meta(row.data, row.doc_id, row.version) for row in rows]
        except SQLAlchemyError as e:
            logger.error(f"Listing '{collection}' failed: {e}")
            raise PersistenceError(f"Could not list '{collection}'") from e
        finally:
            session.close()

    def _delete_all(self, collection: str) -> int:
        session = self._session_factory()
        try:
            deleted = (
                session.query(Document)
                .filter(Document.collection == collection)
                .delete(synchronize_session=False)
            )
            session.commit()
            logger.info(f"Deleted {deleted} documents from '{collection}'")
            return deleted
        except SQLAlchemyError as e:
            session.rollback()
            raise PersistenceError(f"Could not clear '{collection}'") from e
        finally:
            session.close()

    @staticmethod
    def _next_id(session: Session, collection: str) -> int:
        """Allocate the next id inside the caller's transaction."""
        result = session.execute(
            update(Sequence)
            .where(Sequence.name == collection)
            .values(value=Sequence.value + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            # First document of the collection. A concurrent first insert
            # fails on the primary key and surfaces as PersistenceError.
            session.add(Sequence(name=collection, value=1))
            session.flush()
            return 1
        return session.execute(
            select(Sequence.value).where(Sequence.name == collection)
        ).scalar_one()


def _with_meta(data: Dict[str, Any], doc_id: int, version: int) -> Dict[str, Any]:
    return {**data, "id": doc_id, "version": version}
