from __future__ import annotations

import re
from dataclasses import replace

from kits.layout import DEFAULT_LAYOUT, SheetLayout, field
from kits.protocolo import parse_steps
from kits.tipos import Diagnostic, ExtractionResult, KitRecord, ProductRef, ProtocolSteps

_LEADING_INT = re.compile(r"^\s*[+-]?\d+")


def _split(line: str) -> list[str]:
    return (line or "").split("\t")


def parse_quantity(raw: str) -> int:
    """Leading integer of the cell ("2 uds" -> 2); 1 when missing or not positive."""
    m = _LEADING_INT.match(raw or "")
    if not m:
        return 1
    qty = int(m.group(0))
    return qty if qty > 0 else 1


def _find_marker(block: list[str], markers: tuple[str, ...], layout: SheetLayout) -> int:
    for i, line in enumerate(block):
        if any(f"\t{m}\t" in line for m in markers):
            return i
        if field(_split(line), layout.protocol_col) in markers:
            return i
    return -1


def extract_kit(
    block: list[str],
    ordinal: int,
    layout: SheetLayout = DEFAULT_LAYOUT,
    *,
    first_line: int | None = None,
) -> tuple[KitRecord | None, list[Diagnostic]]:
    """Build one KitRecord from the lines of a kit block.

    ``ordinal`` is the 0-based position of the block in the sheet; the
    record's weight is ``ordinal + 1``. Returns ``None`` (plus a
    diagnostic) when the first line has no valid category or name.
    """
    if not block:
        return None, [Diagnostic("malformed_block", "Empty kit block", first_line)]

    head = _split(block[0])
    category = field(head, layout.category_col)
    name = field(head, layout.name_col)
    if category not in layout.categories or not name:
        return None, [
            Diagnostic(
                "malformed_block",
                f"Kit block without category/name (category={category!r}, name={name!r})",
                first_line,
            )
        ]

    tip_re = layout.tip_regex()
    products: list[ProductRef] = []
    tips: list[str] = []
    image_link: str | None = None

    for line in block:
        cols = _split(line)

        code = field(cols, layout.code_col)
        qty_raw = field(cols, layout.quantity_col)
        if code and qty_raw and code not in layout.product_header_tokens:
            products.append(ProductRef(code=code, quantity=parse_quantity(qty_raw)))

        tip = field(cols, layout.tips_col)
        if tip and tip != layout.tips_header_token and tip_re.search(tip):
            tips.append(tip)

        link = field(cols, layout.image_col)
        if link.startswith(layout.image_prefix):
            image_link = link

    day_idx = _find_marker(block, layout.day_markers, layout)
    night_idx = _find_marker(block, layout.night_markers, layout)

    day: list[str] = []
    night: list[str] = []
    for i, line in enumerate(block):
        cell = _split(line)
        text = cell[layout.protocol_col] if layout.protocol_col < len(cell) else ""
        if day_idx != -1 and i > day_idx and (night_idx == -1 or i < night_idx):
            if layout.protocol_first_step in text:
                day = parse_steps(text)
        elif night_idx != -1 and i > night_idx:
            if layout.protocol_first_step in text:
                night = parse_steps(text)

    record = KitRecord(
        category=category,
        name=name,
        products=tuple(products),
        tips=tuple(tips),
        protocol=ProtocolSteps(day=tuple(day), night=tuple(night)),
        image_link=image_link,
        weight=ordinal + 1,
    )
    return record, []


def _blocks(lines: list[str], layout: SheetLayout) -> tuple[list[tuple[int, list[str]]], int, int]:
    """(start, lines) per block, plus header offset and count of orphan lines."""
    offset = 1 if lines and layout.is_header_line(lines[0]) else 0
    data = lines[offset:]

    starts = [i for i, line in enumerate(data) if layout.is_sentinel(field(_split(line), 0))]
    blocks: list[tuple[int, list[str]]] = []
    for n, start in enumerate(starts):
        end = starts[n + 1] if n + 1 < len(starts) else len(data)
        blocks.append((offset + start, data[start:end]))

    orphans = starts[0] if starts else len(data)
    return blocks, offset, orphans


def segment(lines: list[str], layout: SheetLayout = DEFAULT_LAYOUT) -> list[list[str]]:
    """Split sheet lines into kit blocks, one per sentinel row."""
    blocks, _offset, _orphans = _blocks(list(lines), layout)
    return [b for _start, b in blocks]


def extract(lines: list[str], layout: SheetLayout = DEFAULT_LAYOUT) -> ExtractionResult:
    """Sheet lines -> ordered kit records plus diagnostics. Pure."""
    lines = list(lines)
    blocks, offset, orphans = _blocks(lines, layout)

    diagnostics: list[Diagnostic] = []
    if orphans:
        diagnostics.append(
            Diagnostic(
                "orphan_lines",
                f"{orphans} line(s) before the first kit were ignored",
                offset + 1,
            )
        )

    kits: list[KitRecord] = []
    for ordinal, (start, block) in enumerate(blocks):
        record, diags = extract_kit(block, ordinal, layout, first_line=start + 1)
        diagnostics.extend(diags)
        if record is not None:
            kits.append(record)

    # Weights stay dense over the surviving kits.
    kits = [replace(k, weight=i + 1) for i, k in enumerate(kits)]
    return ExtractionResult(kits=tuple(kits), diagnostics=tuple(diagnostics))
