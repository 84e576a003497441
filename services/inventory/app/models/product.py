from sqlalchemy import Column, Integer, Numeric, Text, DateTime, CheckConstraint, Index
from sqlalchemy.sql import func
from app.db.database import Base


class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(Text, nullable=False)
    sku = Column(Text, nullable=False, unique=True)
    category = Column(Text)
    unit_price = Column(Numeric(10, 2), nullable=False)
    description = Column(Text)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __table_args__ = (
        CheckConstraint("unit_price >= 0", name="non_negative_price"),
        Index("idx_products_category", "category"),
    )
