from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import JSON, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    pass


def new_kit_id() -> str:
    return str(uuid.uuid4())


class Product(Base):
    __tablename__ = "products"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    code: Mapped[str] = mapped_column(String(80), nullable=False, unique=True, index=True)

    name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    use: Mapped[str] = mapped_column(Text, nullable=False, default="")

    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)


class Kit(Base):
    __tablename__ = "kits"

    # UUIDs are never reused after a kit is deleted.
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_kit_id)

    category: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)

    tips: Mapped[list | None] = mapped_column(JSON, nullable=True)
    # {"dia": [...], "noche": [...]}
    protocol: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    image_link: Mapped[str | None] = mapped_column(Text, nullable=True)
    weight: Mapped[int | None] = mapped_column(Integer, nullable=True)

    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    kit_products: Mapped[list["KitProduct"]] = relationship(
        "KitProduct", back_populates="kit", cascade="all, delete-orphan", passive_deletes=True
    )

    __table_args__ = (
        UniqueConstraint("name", "category", name="uq_kit_name_category"),
    )


class KitProduct(Base):
    __tablename__ = "kit_products"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    kit_id: Mapped[str] = mapped_column(String(36), ForeignKey("kits.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id: Mapped[int] = mapped_column(Integer, ForeignKey("products.id"), nullable=False, index=True)

    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    kit: Mapped[Kit] = relationship("Kit", back_populates="kit_products")
    product: Mapped[Product] = relationship("Product")
