"""
Visitor model
"""

from datetime import datetime, timezone
from sqlalchemy import Column, Integer, BigInteger, String, Text, DateTime

from barpanel.core.db import Base

def utcnow():
    return datetime.now(timezone.utc)

class Visitor(Base):
    __tablename__ = "visitors"

    # Messenger user id, assigned by the ingestion bot
    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=False)
    username = Column(String(255), nullable=True)
    name = Column(String(255), nullable=True)
    creation_date = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    last_visit_date = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    real_name = Column(String(255), nullable=True)
    comment = Column(Text, nullable=True)
