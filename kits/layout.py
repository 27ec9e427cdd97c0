from __future__ import annotations

import re
from dataclasses import dataclass


@dataclass(frozen=True)
class SheetLayout:
    """Column layout of the "KITS CASA Y PROTOCOLOS CABINA" sheet.

    Indices are 0-based tab fields. Every position the extractor reads
    comes from here, so a change in the workbook only touches this table.
    """

    category_col: int = 0
    name_col: int = 1
    code_col: int = 2
    quantity_col: int = 3
    tips_col: int = 5
    protocol_col: int = 6
    image_col: int = 7

    categories: tuple[str, ...] = ("CASA", "CABINA")
    header_tokens: tuple[str, ...] = ("TIPO", "NOMBRE")
    product_header_tokens: tuple[str, ...] = ("CODIGO", "PRODUCTOS")
    tips_header_token: str = "TIPS"
    day_markers: tuple[str, ...] = ("DÍA", "DIA")
    night_markers: tuple[str, ...] = ("NOCHE",)

    # A tips cell is kept when it carries a numbered marker ("1. ...").
    tip_pattern: str = r"\d+\.\s"
    # Protocol cells are parsed only when they contain the first step.
    protocol_first_step: str = "1."
    image_prefix: str = "http"

    def tip_regex(self) -> re.Pattern[str]:
        return re.compile(self.tip_pattern)

    def is_header_line(self, line: str) -> bool:
        return all(token in line for token in self.header_tokens)

    def is_sentinel(self, first_field: str) -> bool:
        return first_field.strip() in self.categories


DEFAULT_LAYOUT = SheetLayout()


def field(columns: list[str], index: int) -> str:
    """Trimmed cell at ``index``; short rows read as empty."""
    if 0 <= index < len(columns):
        return (columns[index] or "").strip()
    return ""
