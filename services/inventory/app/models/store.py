from sqlalchemy import Column, Integer, Boolean, Text, DateTime
from sqlalchemy.sql import func, expression
from app.db.database import Base


class Store(Base):
    """Store owned by store management; the ledger only references it"""
    __tablename__ = "stores"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(Text, nullable=False)
    address = Column(Text)
    phone = Column(Text)
    email = Column(Text)
    is_active = Column(Boolean, nullable=False, default=True, server_default=expression.true())
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
