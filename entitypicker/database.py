"""
SQLite catalog snapshots.

Stores catalog records locally with SQLAlchemy so the decode action can
run without a live catalog (CI, offline pipelines).
"""

import json
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Set

from sqlalchemy import create_engine, Column, String, Text, DateTime
from sqlalchemy.orm import declarative_base, sessionmaker

from .errors import MalformedFilter, NotFound
from .catalog import Catalog
from .filters import AnyOf, EXISTS, Query, matches
from .logger import get_logger
from .normalize import entity_ref_of, normalize_kind, parse_entity_ref

Base = declarative_base()
logger = get_logger()


class Entity(Base):
    """One catalog record."""

    __tablename__ = "entities"

    entity_ref = Column(String, primary_key=True)  # kind:namespace/name
    kind = Column(String, nullable=False, index=True)
    namespace = Column(String, nullable=False)
    name = Column(String, nullable=False)
    document = Column(Text, nullable=False)
    created_at = Column(DateTime, nullable=False, default=datetime.now)
    updated_at = Column(DateTime, nullable=False, default=datetime.now, onupdate=datetime.now)

    def to_record(self) -> Dict[str, Any]:
        return json.loads(self.document)


def init_database(db_path: Path) -> None:
    """
    Initialize database and create tables.

    Args:
        db_path: Path to SQLite database file
    """
    db_path.parent.mkdir(parents=True, exist_ok=True)
    engine = create_engine(f"sqlite:///{db_path}")
    Base.metadata.create_all(engine)


def get_session(db_path: Path):
    engine = create_engine(f"sqlite:///{db_path}")
    Session = sessionmaker(bind=engine)
    return Session()


def upsert_records(session, records: Iterable[Mapping[str, Any]]) -> Dict[str, int]:
    """
    Insert or update records, keyed by canonical identifier.

    Returns:
        Counts per status: new, updated, no-change, skipped
    """
    counts = {"new": 0, "updated": 0, "no-change": 0, "skipped": 0}
    for record in records:
        try:
            ref = entity_ref_of(record)
        except MalformedFilter as e:
            logger.warning("Skipping record without identity", error=str(e))
            counts["skipped"] += 1
            continue
        document = json.dumps(record, sort_keys=True, default=str)
        row = session.get(Entity, str(ref))
        if row is None:
            session.add(Entity(
                entity_ref=str(ref), kind=ref.kind, namespace=ref.namespace,
                name=ref.name, document=document,
            ))
            counts["new"] += 1
        elif row.document != document:
            row.document = document
            counts["updated"] += 1
        else:
            counts["no-change"] += 1
    session.commit()
    return counts


def _kinds_in(query: Query) -> Set[str] | None:
    """Kinds every group is restricted to, or None when some group is not."""
    kinds: Set[str] = set()
    for group in query:
        clause = group.get("kind")
        if clause is None or clause is EXISTS:
            return None
        values = clause if isinstance(clause, AnyOf) else (clause,)
        kinds.update(normalize_kind(str(v)) for v in values)
    return kinds


class SqlCatalog(Catalog):
    """Catalog backed by a SQLite snapshot."""

    source = "sqlite"

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)
        init_database(self.db_path)

    def find_records(self, query: Query) -> List[Dict[str, Any]]:
        logger.record_fetch_attempt(self.source)
        session = get_session(self.db_path)
        try:
            rows = session.query(Entity)
            kinds = _kinds_in(query) if query else None
            if kinds is not None:
                rows = rows.filter(Entity.kind.in_(sorted(kinds)))
            records = [row.to_record() for row in rows.order_by(Entity.entity_ref)]
        finally:
            session.close()
        logger.record_fetch_success(self.source)
        return [r for r in records if matches(r, query)]

    def resolve_by_identifier(self, identifier: str) -> Dict[str, Any]:
        ref = str(parse_entity_ref(identifier))
        session = get_session(self.db_path)
        try:
            row = session.get(Entity, ref)
            if row is None:
                raise NotFound(f"No record for identifier '{ref}'", identifier=ref)
            return row.to_record()
        finally:
            session.close()

    def count(self) -> int:
        session = get_session(self.db_path)
        try:
            return session.query(Entity).count()
        finally:
            session.close()
