"""
Kits Sync - Repository Tests
Tests for ProductRepo and KitRepo against SQLite.
"""

import pytest
from sqlalchemy import select

from kits.db import session_scope
from kits.errors import KitNotFoundError, ProductNotFoundError
from kits.models import KitProduct, Product
from kits.repos import KitRepo, ProductRepo
from kits.tipos import CatalogProduct, ProductRef


class TestProductRepo:
    """Tests for the product catalog."""

    def test_upsert_inserts_and_updates(self, session_factory, catalog):
        with session_scope(session_factory) as session:
            repo = ProductRepo(session)
            repo.upsert_many([CatalogProduct(code="P1", name="Crema nueva"), CatalogProduct(code="P4", name="Tónico")])

        with session_scope(session_factory) as session:
            repo = ProductRepo(session)
            assert repo.find_by_code("P1").name == "Crema nueva"
            assert repo.find_by_code("P4").name == "Tónico"
            assert len(repo.list()) == 4

    def test_upsert_keeps_last_duplicate(self, session_factory):
        with session_scope(session_factory) as session:
            n = ProductRepo(session).upsert_many([CatalogProduct("X", "uno"), CatalogProduct("X", "dos")])
        assert n == 1

        with session_scope(session_factory) as session:
            assert ProductRepo(session).find_by_code("X").name == "dos"

    def test_get_by_codes(self, session_factory, catalog):
        with session_scope(session_factory) as session:
            found = ProductRepo(session).get_by_codes(["P1", "P3", "NOPE"])
            assert sorted(found) == ["P1", "P3"]

    def test_resolve_keeps_order_and_quantities(self, session_factory, catalog):
        with session_scope(session_factory) as session:
            resolved = ProductRepo(session).resolve((ProductRef("P3", 2), ProductRef("P1", 1)))
            assert [(p.code, q) for p, q in resolved] == [("P3", 2), ("P1", 1)]

    def test_resolve_unknown_code(self, session_factory, catalog):
        with session_scope(session_factory) as session:
            with pytest.raises(ProductNotFoundError, match="Product not found ZZZ"):
                ProductRepo(session).resolve((ProductRef("P1", 1), ProductRef("ZZZ", 1)))

    def test_list_filter(self, session_factory, catalog):
        with session_scope(session_factory) as session:
            assert [p.code for p in ProductRepo(session).list("Sérum")] == ["P2"]


class TestKitRepo:
    """Tests for kit persistence."""

    def _create(self, session_factory, record, codes=("P1",)):
        with session_scope(session_factory) as session:
            products = ProductRepo(session).get_by_codes(list(codes))
            kit = KitRepo(session).create(record, [(products[c], 2) for c in codes])
            return kit.id

    def test_create_and_get(self, session_factory, catalog, kit_factory, protocol):
        kit_id = self._create(session_factory, kit_factory("A", tips=("1. x",), protocol=protocol))

        with session_scope(session_factory) as session:
            kit = KitRepo(session).get(kit_id)
            assert kit.name == "A"
            assert kit.tips == ["1. x"]
            assert kit.protocol == {"dia": ["Limpiar", "Hidratar"], "noche": ["Desmaquillar"]}
            assert [(kp.product.code, kp.quantity) for kp in kit.kit_products] == [("P1", 2)]

    def test_find_one_by_id_or_name(self, session_factory, catalog, kit_factory):
        kit_id = self._create(session_factory, kit_factory("Kit Rosa"))

        with session_scope(session_factory) as session:
            repo = KitRepo(session)
            assert repo.find_one(kit_id).name == "Kit Rosa"
            assert repo.find_one("KIT ROSA").id == kit_id
            with pytest.raises(KitNotFoundError):
                repo.find_one("otro")

    def test_list_all_ordered_by_weight(self, session_factory, catalog, kit_factory):
        self._create(session_factory, kit_factory("B", weight=2))
        self._create(session_factory, kit_factory("A", weight=1))

        with session_scope(session_factory) as session:
            assert [k.name for k in KitRepo(session).list_all()] == ["A", "B"]

    def test_remove_cascades_products(self, session_factory, catalog, kit_factory):
        kit_id = self._create(session_factory, kit_factory("A"), codes=("P1", "P2"))

        with session_scope(session_factory) as session:
            repo = KitRepo(session)
            repo.remove(repo.get(kit_id))

        with session_scope(session_factory) as session:
            assert session.execute(select(KitProduct)).scalars().all() == []
            # Catalog rows are never touched.
            assert len(session.execute(select(Product)).scalars().all()) == 3

    def test_delete_all(self, session_factory, catalog, kit_factory):
        self._create(session_factory, kit_factory("A"))
        self._create(session_factory, kit_factory("B"))

        with session_scope(session_factory) as session:
            assert KitRepo(session).delete_all() == 2

        with session_scope(session_factory) as session:
            assert KitRepo(session).list_all() == []
