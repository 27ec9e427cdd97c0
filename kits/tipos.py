from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class CatalogProduct:
    """Producto normalizado para hacer UPSERT en el catálogo."""

    code: str
    name: str
    use: str = ""


@dataclass(frozen=True)
class ProductRef:
    """Referencia a un producto del catálogo dentro de un kit."""

    code: str
    quantity: int = 1


@dataclass(frozen=True)
class ProtocolSteps:
    day: tuple[str, ...] = ()
    night: tuple[str, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.day and not self.night

    def to_json(self) -> dict:
        # Stored shape keeps the sheet's section names.
        return {"dia": list(self.day), "noche": list(self.night)}

    @classmethod
    def from_json(cls, data: dict | None) -> "ProtocolSteps":
        data = data or {}
        return cls(day=tuple(data.get("dia") or ()), night=tuple(data.get("noche") or ()))


@dataclass(frozen=True)
class KitRecord:
    """Kit normalizado extraído de la hoja.

    No tiene identidad propia: se crea en cada extracción y se compara
    con la base de datos por su clave natural (nombre, o nombre + categoría).
    """

    category: str
    name: str
    products: tuple[ProductRef, ...] = ()
    tips: tuple[str, ...] = ()
    protocol: ProtocolSteps = field(default_factory=ProtocolSteps)
    image_link: str | None = None
    weight: int = 1

    def summary(self) -> dict:
        return {
            "category": self.category,
            "name": self.name,
            "products_count": len(self.products),
            "tips_count": len(self.tips),
            "has_protocol": not self.protocol.is_empty,
            "has_image": bool(self.image_link),
        }

    def to_json(self) -> dict:
        return {
            "category": self.category,
            "name": self.name,
            "weight": self.weight,
            "products": [{"code": p.code, "quantity": p.quantity} for p in self.products],
            "tips": list(self.tips),
            "protocol": self.protocol.to_json(),
            "image_link": self.image_link,
        }


@dataclass(frozen=True)
class Diagnostic:
    code: str
    message: str
    line: int | None = None

    def to_json(self) -> dict:
        return {"code": self.code, "message": self.message, "line": self.line}


@dataclass(frozen=True)
class ExtractionResult:
    kits: tuple[KitRecord, ...] = ()
    diagnostics: tuple[Diagnostic, ...] = ()
