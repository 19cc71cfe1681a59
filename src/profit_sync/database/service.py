"""Database service backing the local durable store."""

import copy
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from sqlalchemy import create_engine, delete, func, inspect, select
from sqlalchemy.orm import Session, sessionmaker

from alembic import command  # type: ignore[attr-defined]
from alembic.config import Config as AlembicConfig  # type: ignore[import-not-found]

from ..utils.timestamps import parse_timestamp, to_naive_utc
from .models import Base, LocalDocument, LocalState, Namespace

logger = logging.getLogger(__name__)


class DatabaseService:
    """Service for database operations and transaction management.

    All methods are synchronous; LocalStore runs them off the event loop.
    """

    def __init__(self, db_path: Optional[Path] = None) -> None:
        """Initialize database service.

        Args:
            db_path: Path to SQLite database file.
                    If None, uses default ~/.profit-sync/local.db
        """
        if db_path is None:
            db_path = Path.home() / ".profit-sync" / "local.db"

        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        db_exists = self.db_path.exists()

        # Sessions are opened from worker threads (asyncio.to_thread)
        self.engine = create_engine(
            f"sqlite:///{self.db_path}",
            echo=False,
            connect_args={"check_same_thread": False},
        )
        self.SessionLocal = sessionmaker(
            autocommit=False, autoflush=False, bind=self.engine
        )

        logger.info("Local database initialized at: %s", self.db_path)

        if not db_exists or not self.is_initialized():
            logger.info("New database detected, initializing schema...")
            self.init_db()

    def init_db(self) -> None:
        """Initialize database schema.

        Creates tables with SQLAlchemy and stamps Alembic at head, since the
        freshly created schema already matches the latest revision.
        """
        Base.metadata.create_all(bind=self.engine)
        logger.info("Database schema created successfully")
        self._stamp_migrations()

    def _alembic_config(self) -> Optional[AlembicConfig]:
        """Build an Alembic config pointing at this database, if available."""
        # alembic.ini and alembic/ live in the project root, next to src/
        project_dir = Path(__file__).parent.parent.parent.parent
        alembic_ini = project_dir / "alembic.ini"
        alembic_dir = project_dir / "alembic"

        if not alembic_ini.exists() or not alembic_dir.exists():
            logger.debug("Alembic environment not found at %s", project_dir)
            return None

        alembic_cfg = AlembicConfig(str(alembic_ini))
        alembic_cfg.set_main_option("script_location", str(alembic_dir))
        alembic_cfg.set_main_option("sqlalchemy.url", f"sqlite:///{self.db_path}")
        return alembic_cfg

    def _stamp_migrations(self) -> None:
        """Stamp database as being at the latest migration version."""
        alembic_cfg = self._alembic_config()
        if alembic_cfg is None:
            logger.debug("Skipping migration stamp")
            return

        try:
            command.stamp(alembic_cfg, "head")
            logger.debug("Database stamped with latest migration version")
        except Exception as e:
            logger.error("Failed to stamp migrations: %s", e)
            logger.warning("Database may need manual migration")

    def get_session(self) -> Session:
        """Get a new database session.

        Note:
            Caller is responsible for closing the session
        """
        return self.SessionLocal()

    def is_initialized(self) -> bool:
        """Check whether the required tables exist."""
        inspector = inspect(self.engine)
        return inspector.has_table("local_documents") and inspector.has_table(
            "local_state"
        )

    # =========================================================================
    # Document Operations
    # =========================================================================

    def upsert_document(self, namespace: Namespace, document: Dict[str, Any]) -> str:
        """Insert or replace a document by its natural key.

        Args:
            namespace: Target namespace
            document: Document containing the namespace's key field

        Returns:
            The document key

        Raises:
            ValueError: If the document has no key
        """
        key = document.get(namespace.key_field)
        if key is None or key == "":
            raise ValueError(
                f"Document for '{namespace.value}' is missing "
                f"key field '{namespace.key_field}'"
            )
        key = str(key)

        payload = copy.deepcopy(document)
        modified_at = parse_timestamp(payload.get("modifiedAt"))
        queued_at = parse_timestamp(payload.get("offlineTimestamp"))

        with self.get_session() as session:
            stmt = select(LocalDocument).where(
                LocalDocument.namespace == namespace.value,
                LocalDocument.key == key,
            )
            row = session.scalar(stmt)
            if row is None:
                row = LocalDocument(namespace=namespace.value, key=key, payload=payload)
                session.add(row)
            else:
                row.payload = payload

            row.modified_at = to_naive_utc(modified_at) if modified_at else None
            row.queued_at = to_naive_utc(queued_at) if queued_at else None
            session.commit()

        logger.debug("Upserted %s/%s", namespace.value, key)
        return key

    def get_document(self, namespace: Namespace, key: str) -> Optional[Dict[str, Any]]:
        """Get a document by key, or None if absent."""
        with self.get_session() as session:
            stmt = select(LocalDocument.payload).where(
                LocalDocument.namespace == namespace.value,
                LocalDocument.key == str(key),
            )
            payload = session.scalar(stmt)
            return copy.deepcopy(payload) if payload is not None else None

    def get_documents(self, namespace: Namespace) -> List[Dict[str, Any]]:
        """Get all documents of a namespace.

        Outbox namespaces are returned in enqueue order, others by key.
        """
        with self.get_session() as session:
            stmt = select(LocalDocument.payload).where(
                LocalDocument.namespace == namespace.value
            )
            if namespace.is_outbox:
                stmt = stmt.order_by(LocalDocument.queued_at, LocalDocument.id)
            else:
                stmt = stmt.order_by(LocalDocument.key)
            return [copy.deepcopy(p) for p in session.scalars(stmt).all()]

    def get_documents_modified_since(
        self, namespace: Namespace, since: datetime
    ) -> List[Dict[str, Any]]:
        """Get documents whose modifiedAt is strictly after ``since``."""
        with self.get_session() as session:
            stmt = (
                select(LocalDocument.payload)
                .where(
                    LocalDocument.namespace == namespace.value,
                    LocalDocument.modified_at > to_naive_utc(since),
                )
                .order_by(LocalDocument.modified_at)
            )
            return [copy.deepcopy(p) for p in session.scalars(stmt).all()]

    def delete_document(self, namespace: Namespace, key: str) -> bool:
        """Delete a document.

        Returns:
            True if a document was removed
        """
        with self.get_session() as session:
            result = session.execute(
                delete(LocalDocument).where(
                    LocalDocument.namespace == namespace.value,
                    LocalDocument.key == str(key),
                )
            )
            session.commit()
            return bool(result.rowcount)

    def clear_namespace(self, namespace: Namespace) -> int:
        """Delete every document of a namespace.

        Returns:
            Number of documents removed
        """
        with self.get_session() as session:
            result = session.execute(
                delete(LocalDocument).where(LocalDocument.namespace == namespace.value)
            )
            session.commit()
            removed = result.rowcount or 0
        logger.info("Cleared %d documents from %s", removed, namespace.value)
        return removed

    def count_documents(self, namespace: Namespace) -> int:
        """Count documents in a namespace."""
        with self.get_session() as session:
            stmt = select(func.count(LocalDocument.id)).where(
                LocalDocument.namespace == namespace.value
            )
            return int(session.scalar(stmt) or 0)

    # =========================================================================
    # Local State
    # =========================================================================

    def get_state(self, name: str) -> Optional[str]:
        """Get a persisted state value."""
        with self.get_session() as session:
            row = session.get(LocalState, name)
            return row.value if row else None

    def set_state(self, name: str, value: str) -> None:
        """Persist a state value, replacing any previous one."""
        with self.get_session() as session:
            row = session.get(LocalState, name)
            if row is None:
                session.add(LocalState(name=name, value=value))
            else:
                row.value = value
            session.commit()

    def delete_state(self, name: str) -> None:
        """Remove a persisted state value if present."""
        with self.get_session() as session:
            row = session.get(LocalState, name)
            if row is not None:
                session.delete(row)
                session.commit()

    # =========================================================================
    # Utility Methods
    # =========================================================================

    def get_statistics(self) -> Dict[str, Any]:
        """Get document counts per namespace."""
        stats: Dict[str, Any] = {ns.value: self.count_documents(ns) for ns in Namespace}
        stats["database_path"] = str(self.db_path)
        return stats

    def close(self) -> None:
        """Close database connection."""
        if hasattr(self, "engine"):
            self.engine.dispose()
            logger.debug("Database connection closed")
