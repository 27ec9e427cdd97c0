from __future__ import annotations

import logging
import unicodedata
from datetime import date, datetime
from pathlib import Path
from typing import Any

from openpyxl import load_workbook

from kits.errors import SheetError
from kits.tipos import CatalogProduct

logger = logging.getLogger(__name__)

KITS_WORKSHEET = "KITS CASA Y PROTOCOLOS CABINA"


def _norm(x: Any) -> str:
    s = str(x or "").strip()
    s = " ".join(s.split())
    s = unicodedata.normalize("NFKD", s)
    s = "".join(ch for ch in s if not unicodedata.combining(ch))
    return s.casefold()


def cell_text(value: Any) -> str:
    """Cell value as sheet text. Tabs never survive inside a cell."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    s = str(value)
    s = s.replace("\r\n", "\n").replace("\r", "\n")
    return s.replace("\t", " ")


def _open(xlsx_path: Path):
    if not xlsx_path.exists():
        raise SheetError("Excel file not found", filename=str(xlsx_path))
    try:
        # read_only=True is dramatically faster and avoids huge memory spikes.
        return load_workbook(filename=xlsx_path, data_only=True, read_only=True)
    except Exception as e:
        raise SheetError(f"Could not open workbook: {e}", filename=str(xlsx_path)) from e


class KitSheetReader:
    """Turns the kits worksheet into tab-delimited lines, one per row.

    Multi-line cells keep their newlines inside the line; only the tab is
    a field separator. Blank rows are dropped.
    """

    def __init__(self, xlsx_path: Path, worksheet_name: str = KITS_WORKSHEET):
        self.xlsx_path = Path(xlsx_path)
        self.worksheet_name = worksheet_name or KITS_WORKSHEET
        self.used_worksheet: str | None = None

    def _pick_sheet(self, wb):
        if self.worksheet_name in wb.sheetnames:
            return wb[self.worksheet_name]
        wanted = _norm(self.worksheet_name)
        for name in wb.sheetnames:
            if _norm(name) == wanted:
                return wb[name]
        if not wb.sheetnames:
            raise SheetError("No sheets found in Excel file", filename=str(self.xlsx_path))
        first = wb.sheetnames[0]
        logger.warning('Sheet "%s" not found. Using first sheet: %s', self.worksheet_name, first)
        return wb[first]

    def read_lines(self) -> list[str]:
        wb = _open(self.xlsx_path)
        try:
            ws = self._pick_sheet(wb)
            self.used_worksheet = ws.title
            lines: list[str] = []
            for row_vals in ws.iter_rows(values_only=True):
                line = "\t".join(cell_text(v) for v in row_vals)
                if line.strip():
                    lines.append(line)
        finally:
            wb.close()

        logger.info("Read %s lines from %s [%s]", len(lines), self.xlsx_path.name, self.used_worksheet)
        return lines


class ProductSheetReader:
    # Header aliases to support the catalog workbooks in use.
    HEADER_ALIASES: dict[str, list[str]] = {
        "code": ["CODIGO", "CÓDIGO", "CODE", "REFERENCIA"],
        "name": ["NOMBRE", "PRODUCTO", "PRODUCTOS", "DESCRIPCION"],
        "use": ["USO", "MODO DE USO", "USE"],
    }

    def __init__(self, xlsx_path: Path, worksheet_name: str = "PRODUCTOS"):
        self.xlsx_path = Path(xlsx_path)
        self.worksheet_name = worksheet_name

    def _score_row(self, row_vals: list[Any]) -> tuple[int, dict[str, str]]:
        present = {_norm(v) for v in row_vals if _norm(v)}
        matched: dict[str, str] = {}
        score = 0
        for fld, aliases in self.HEADER_ALIASES.items():
            for a in aliases:
                if _norm(a) in present:
                    matched[fld] = a
                    score += 1
                    break
        return score, matched

    def _find_header(self, ws, scan_rows: int = 40) -> tuple[int, dict[str, int]]:
        best_row = None
        best_score = -1
        best_values = None

        for r, row_vals in enumerate(ws.iter_rows(max_row=scan_rows, values_only=True), start=1):
            score, _matched = self._score_row(list(row_vals))
            if score > best_score:
                best_score = score
                best_row = r
                best_values = list(row_vals)

        if best_score < 2 or best_row is None or best_values is None:
            raise SheetError(
                "Could not detect header row. Ensure it contains columns like CODIGO and NOMBRE/PRODUCTO.",
                filename=str(self.xlsx_path),
            )

        header_map = {_norm(name): idx for idx, name in enumerate(best_values) if _norm(name)}
        return best_row, header_map

    def _pick_sheet(self, wb):
        if self.worksheet_name in wb.sheetnames:
            return wb[self.worksheet_name]

        # Fallback: auto-detect best match in any worksheet.
        best_name = None
        best_score = -1
        for name in wb.sheetnames:
            for row_vals in wb[name].iter_rows(max_row=40, values_only=True):
                score, _matched = self._score_row(list(row_vals))
                if score > best_score:
                    best_score = score
                    best_name = name
        if best_name is None or best_score < 2:
            raise SheetError(
                f"Worksheet '{self.worksheet_name}' not found and no compatible sheet was detected",
                filename=str(self.xlsx_path),
            )
        return wb[best_name]

    def read_products(self) -> list[CatalogProduct]:
        wb = _open(self.xlsx_path)
        try:
            ws = self._pick_sheet(wb)
            header_row, header_map = self._find_header(ws)

            def col_any(displays: list[str]) -> int:
                for display in displays:
                    k = _norm(display)
                    if k in header_map:
                        return header_map[k]
                return -1

            i_code = col_any(self.HEADER_ALIASES["code"])
            i_name = col_any(self.HEADER_ALIASES["name"])
            i_use = col_any(self.HEADER_ALIASES["use"])

            out: list[CatalogProduct] = []
            for row_vals in ws.iter_rows(min_row=header_row + 1, values_only=True):
                def at(i0: int) -> str:
                    return cell_text(row_vals[i0]).strip() if 0 <= i0 < len(row_vals) else ""

                code = at(i_code).upper()
                if not code:
                    continue
                out.append(CatalogProduct(code=code, name=at(i_name), use=at(i_use)))
        finally:
            wb.close()

        logger.info("Read %s catalog products from %s", len(out), self.xlsx_path.name)
        return out
