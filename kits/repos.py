from __future__ import annotations

import uuid
from collections import Counter
from datetime import datetime

from sqlalchemy import delete, func, insert, select, update
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session, selectinload

from kits.errors import KitNotFoundError, ProductNotFoundError
from kits.models import Kit, KitProduct, Product
from kits.tipos import CatalogProduct, KitRecord, ProductRef, ProtocolSteps


def _is_uuid(term: str) -> bool:
    try:
        uuid.UUID(str(term))
    except (ValueError, TypeError):
        return False
    return True


def kit_values(record: KitRecord) -> dict:
    """Scalar columns of a kit row for ``record``."""
    return {
        "category": record.category,
        "name": record.name,
        "tips": list(record.tips),
        "protocol": record.protocol.to_json(),
        "image_link": record.image_link,
        "weight": record.weight,
        "updated_at": datetime.utcnow(),
    }


class ProductRepo:
    def __init__(self, session: Session):
        self.session = session

    def find_by_code(self, code: str) -> Product | None:
        return self.session.execute(select(Product).where(Product.code == code)).scalar_one_or_none()

    def get_by_codes(self, codes: list[str]) -> dict[str, Product]:
        if not codes:
            return {}
        rows = self.session.execute(select(Product).where(Product.code.in_(set(codes)))).scalars().all()
        return {r.code: r for r in rows}

    def resolve(self, refs: tuple[ProductRef, ...]) -> list[tuple[Product, int]]:
        """(product, quantity) per reference, in order. Codes match exactly."""
        out: list[tuple[Product, int]] = []
        for ref in refs:
            product = self.find_by_code(ref.code)
            if product is None:
                raise ProductNotFoundError(ref.code)
            out.append((product, ref.quantity))
        return out

    def list(self, q: str = "", limit: int = 300) -> list[Product]:
        stmt = select(Product)
        qn = (q or "").strip()
        if qn:
            like = f"%{qn}%"
            stmt = stmt.where((Product.code.like(like)) | (Product.name.like(like)))
        stmt = stmt.order_by(Product.code.asc()).limit(int(limit))
        return self.session.execute(stmt).scalars().all()

    def upsert_many(self, products: list[CatalogProduct]) -> int:
        if not products:
            return 0

        # Sheets can repeat a code; keep the last occurrence.
        dedup: dict[str, CatalogProduct] = {}
        for p in products:
            dedup[p.code] = p
        products = list(dedup.values())

        # Fast path for SQLite: single executemany UPSERT.
        bind = self.session.get_bind()
        if bind is not None and getattr(bind.dialect, "name", "") == "sqlite":
            now = datetime.utcnow()
            rows = [{"code": p.code, "name": p.name, "use": p.use, "updated_at": now} for p in products]
            stmt = sqlite_insert(Product).values(rows)
            stmt = stmt.on_conflict_do_update(
                index_elements=[Product.code],
                set_={
                    "name": stmt.excluded.name,
                    "use": stmt.excluded.use,
                    "updated_at": stmt.excluded.updated_at,
                },
            )
            self.session.execute(stmt)
            return len(products)

        # Generic fallback (non-sqlite)
        existing = self.get_by_codes([p.code for p in products])
        now = datetime.utcnow()
        for p in products:
            row = existing.get(p.code)
            if row is None:
                self.session.add(Product(code=p.code, name=p.name, use=p.use, updated_at=now))
            else:
                row.name = p.name
                row.use = p.use
                row.updated_at = now
        return len(products)


class KitRepo:
    def __init__(self, session: Session):
        self.session = session

    def _with_products(self):
        return selectinload(Kit.kit_products).selectinload(KitProduct.product)

    def list_all(self) -> list[Kit]:
        stmt = select(Kit).options(self._with_products()).order_by(Kit.weight.asc(), Kit.name.asc())
        return self.session.execute(stmt).scalars().all()

    def get(self, kit_id: str) -> Kit | None:
        stmt = select(Kit).options(self._with_products()).where(Kit.id == kit_id)
        return self.session.execute(stmt).scalar_one_or_none()

    def find_one(self, term: str) -> Kit:
        """Kit by id, or by name ignoring case."""
        t = (term or "").strip()
        if _is_uuid(t):
            kit = self.get(t)
        else:
            stmt = select(Kit).options(self._with_products()).where(func.lower(Kit.name) == func.lower(t))
            kit = self.session.execute(stmt).scalars().first()
        if kit is None:
            raise KitNotFoundError(t)
        return kit

    def find_by_name_and_category(self, name: str, category: str) -> Kit | None:
        stmt = select(Kit).where(Kit.name == name, Kit.category == category)
        return self.session.execute(stmt).scalar_one_or_none()

    def find_by_category(self, category: str) -> list[Kit]:
        stmt = select(Kit).where(Kit.category == category).order_by(Kit.weight.asc())
        return self.session.execute(stmt).scalars().all()

    def create(self, record: KitRecord, products: list[tuple[Product, int]]) -> Kit:
        kit = Kit(**kit_values(record))
        kit.kit_products = [KitProduct(product=p, quantity=int(qty)) for p, qty in products]
        self.session.add(kit)
        self.session.flush()
        return kit

    def save(self, kit: Kit, record: KitRecord, products: list[tuple[Product, int]]) -> Kit:
        """Overwrite ``kit`` with ``record``; previous associations are dropped."""
        for k, v in kit_values(record).items():
            setattr(kit, k, v)
        kit.kit_products = [KitProduct(product=p, quantity=int(qty)) for p, qty in products]
        self.session.flush()
        return kit

    def remove(self, kit: Kit) -> None:
        self.session.delete(kit)
        self.session.flush()

    # --- batch operations ---

    def batch_insert(self, rows: list[dict]) -> int:
        if not rows:
            return 0
        self.session.execute(insert(Kit), rows)
        return len(rows)

    def batch_update(self, rows: list[dict]) -> int:
        # Each row carries its primary key ("id").
        if not rows:
            return 0
        self.session.execute(update(Kit), rows)
        return len(rows)

    def batch_delete(self, kit_ids: list[str]) -> int:
        if not kit_ids:
            return 0
        self.delete_products_of(kit_ids)
        self.session.execute(delete(Kit).where(Kit.id.in_(kit_ids)).execution_options(synchronize_session=False))
        return len(kit_ids)

    def batch_insert_products(self, rows: list[dict]) -> int:
        if not rows:
            return 0
        self.session.execute(insert(KitProduct), rows)
        return len(rows)

    def delete_products_of(self, kit_ids: list[str]) -> None:
        if not kit_ids:
            return
        self.session.execute(
            delete(KitProduct).where(KitProduct.kit_id.in_(kit_ids)).execution_options(synchronize_session=False)
        )

    def delete_all(self) -> int:
        total = self.session.execute(select(func.count(Kit.id))).scalar_one()
        self.session.execute(delete(KitProduct))
        self.session.execute(delete(Kit))
        return int(total)

    def statistics(self) -> dict:
        stmt = select(Kit.category, Kit.image_link, Kit.protocol)
        rows = self.session.execute(stmt).all()

        by_category: Counter[str] = Counter()
        with_images = 0
        with_protocols = 0
        for category, image_link, protocol in rows:
            by_category[str(category)] += 1
            if image_link:
                with_images += 1
            if not ProtocolSteps.from_json(protocol).is_empty:
                with_protocols += 1

        return {
            "total_kits": len(rows),
            "by_category": dict(sorted(by_category.items())),
            "with_images": with_images,
            "with_protocols": with_protocols,
        }
