from __future__ import annotations

from sqlalchemy import Column, DateTime, String, Text
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

Base = declarative_base()

STATE_PARTITION_KEY = "state"
STATE_ROW_KEY = "current"


class FamilyState(Base):
    __tablename__ = "family_state"

    partition_key = Column(String, primary_key=True, default=STATE_PARTITION_KEY)
    row_key = Column(String, primary_key=True, default=STATE_ROW_KEY)
    data = Column(Text, nullable=False)
    last_updated = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return (
            "<FamilyState(partition_key={0}, row_key={1}, last_updated={2})>"
        ).format(self.partition_key, self.row_key, self.last_updated)
