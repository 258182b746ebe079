"""Durable key/value state row backing the shared state store."""
from sqlalchemy import Column, Integer, String, Text, DateTime
from sqlalchemy.sql import func
from irrigation_engine.config.database import Base


class StateEntry(Base):
    """One key of the shared irrigation state, stored as canonical JSON."""
    __tablename__ = 'state_entries'

    key = Column(String(100), primary_key=True, index=True)
    value = Column(Text, nullable=False)  # json.dumps(..., sort_keys=True)
    version = Column(Integer, nullable=False, default=1)  # Bumped on every write
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<StateEntry(key={self.key}, version={self.version}, updated={self.updated_at})>"
