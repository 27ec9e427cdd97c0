"""
Kits Sync - Test Fixtures
Shared fixtures for pytest tests.
"""

from pathlib import Path

import pytest
from openpyxl import Workbook

from kits.db import create_engine_from_url, init_db, make_session_factory, session_scope
from kits.repos import ProductRepo
from kits.settings import Settings
from kits.tipos import CatalogProduct, KitRecord, ProductRef, ProtocolSteps


# =============================================================================
# SAMPLE DATA FIXTURES
# =============================================================================

@pytest.fixture
def sample_lines() -> list[str]:
    """Two kits as they come out of the kits worksheet."""
    return [
        "TIPO\tNOMBRE\tCODIGO\tCANTIDAD\tPRODUCTOS\tTIPS\tPROTOCOLO\tIMAGEN",
        "CASA\tKit Hidratación\tP1\t2\tCrema hidratante\t1. Aplicar en rostro limpio\t\thttps://img.example/hidra.png",
        "\t\tP2\t1\tSérum\t2. Usar protector solar\t\t",
        "\t\t\t\t\t\tDÍA\t",
        "\t\t\t\t\t\t1. Limpiar\n2. Aplicar sérum\t",
        "\t\t\t\t\t\tNOCHE\t",
        "\t\t\t\t\t\t1. Desmaquillar\n2. Crema de noche\t",
        "CABINA\tProtocolo Antiedad\tP3\t1\tMascarilla\t\t\t",
    ]


@pytest.fixture
def kit_factory():
    """Build KitRecord objects from (code, quantity) pairs: (("P1", 2), ...)."""

    def make(name, category="CASA", products=(("P1", 1),), weight=1, **extra):
        refs = tuple(ProductRef(code=c, quantity=q) for c, q in products)
        return KitRecord(category=category, name=name, products=refs, weight=weight, **extra)

    return make


@pytest.fixture
def protocol() -> ProtocolSteps:
    return ProtocolSteps(day=("Limpiar", "Hidratar"), night=("Desmaquillar",))


# =============================================================================
# DATABASE FIXTURES
# =============================================================================

@pytest.fixture
def engine(tmp_path):
    """Temporary SQLite file database with the schema created."""
    eng = create_engine_from_url(f"sqlite:///{(tmp_path / 'kits.sqlite').as_posix()}")
    init_db(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
def catalog(session_factory) -> list[CatalogProduct]:
    """Products P1..P3 loaded in the catalog."""
    products = [
        CatalogProduct(code="P1", name="Crema hidratante", use="Mañana y noche"),
        CatalogProduct(code="P2", name="Sérum"),
        CatalogProduct(code="P3", name="Mascarilla"),
    ]
    with session_scope(session_factory) as session:
        ProductRepo(session).upsert_many(products)
    return products


@pytest.fixture
def settings(tmp_path, monkeypatch) -> Settings:
    monkeypatch.delenv("DATABASE_URL", raising=False)
    return Settings(INSTANCE_DIR=tmp_path, KITS_MATCH_KEY="name")


# =============================================================================
# FILE FIXTURES
# =============================================================================

@pytest.fixture
def kits_workbook(tmp_path, sample_lines) -> Path:
    """Workbook with the kits sheet built from ``sample_lines``."""
    wb = Workbook()
    ws = wb.active
    ws.title = "KITS CASA Y PROTOCOLOS CABINA"
    for line in sample_lines:
        ws.append([v if v != "" else None for v in line.split("\t")])

    other = wb.create_sheet("NOTAS")
    other.append(["nada que ver aquí"])

    path = tmp_path / "KITS.xlsx"
    wb.save(path)
    return path


@pytest.fixture
def products_workbook(tmp_path) -> Path:
    """Catalog workbook with a title row above the header."""
    wb = Workbook()
    ws = wb.active
    ws.title = "PRODUCTOS"
    ws.append(["Catálogo 2024"])
    ws.append(["Código", "Nombre", "Uso"])
    ws.append(["p1", "Crema hidratante", "Mañana"])
    ws.append(["P2", "Sérum", None])
    ws.append([None, "Sin código", None])
    ws.append([1234, "Producto numérico", None])

    path = tmp_path / "productos.xlsx"
    wb.save(path)
    return path
