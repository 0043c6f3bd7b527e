"""
SQLAlchemy ORM models for the SQL record store backend.

Each collection (users, contacts, messages) is kept as one JSON payload row,
so the SQL backend has the same whole-collection load/save contract as the
JSON file backend. For Pydantic request/response schemas, see schemas.py.
"""

from sqlalchemy import Column, String, Text

from blueme.storage import Base


class StoredCollection(Base):
    """
    SQLAlchemy model holding one serialized collection.

    Table: stored_collections
    Primary Key: name (users, contacts, messages)
    """
    __tablename__ = "stored_collections"

    name = Column(String, primary_key=True)
    payload = Column(Text, nullable=False)  # JSON document
    updated_at = Column(String, nullable=False)  # Server time ISO-8601
