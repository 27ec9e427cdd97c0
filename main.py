from __future__ import annotations

import argparse
import json
import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

from kits.db import create_engine_from_url, init_db, make_session_factory, session_scope
from kits.errors import KitsError
from kits.excel_import import KitSheetReader, ProductSheetReader
from kits.extraccion import extract
from kits.planificador import MatchKey
from kits.repos import ProductRepo
from kits.settings import Settings
from kits.sincronizacion import SincronizadorKits

logger = logging.getLogger("kits")


def setup_logging(log_level: str = "INFO", log_file: str = "") -> logging.Logger:
    """Console handler, plus a rotating file handler when LOG_FILE is set."""
    root = logging.getLogger()
    root.setLevel(getattr(logging, (log_level or "INFO").upper(), logging.INFO))

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(logging.Formatter("%(asctime)s | %(levelname)-7s | %(message)s", datefmt="%H:%M:%S"))
    root.addHandler(console)

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(path, maxBytes=5 * 1024 * 1024, backupCount=5, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter("%(asctime)s | %(levelname)-7s | %(name)s | %(message)s"))
        root.addHandler(file_handler)

    return root


def _print(payload) -> None:
    print(json.dumps(payload, ensure_ascii=False, indent=2))


def _workbook(args, settings: Settings) -> Path:
    return Path(args.xlsx).resolve() if args.xlsx else settings.workbook_path()


def build_parser(app_name: str = "Kits Sync") -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="kits", description=f"{app_name}: sync kit definitions from the kits workbook")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("extract", help="Parse the workbook and print the kits found")
    p.add_argument("xlsx", nargs="?", help="Workbook path (default: KITS_WORKBOOK_PATH)")

    p = sub.add_parser("preview", help="Show what a sync would change")
    p.add_argument("xlsx", nargs="?")

    p = sub.add_parser("sync", help="Create, update and delete kits to match the workbook")
    p.add_argument("xlsx", nargs="?")
    p.add_argument("--key", choices=[k.value for k in MatchKey], default=None)
    p.add_argument("--bulk", action="store_true", help="Use batch statements instead of per-kit savepoints")

    p = sub.add_parser("upsert", help="Create or update by name + category; never deletes")
    p.add_argument("xlsx", nargs="?")

    sub.add_parser("stats", help="Print kit statistics")

    p = sub.add_parser("import-products", help="Load the product catalog from a workbook")
    p.add_argument("xlsx")
    p.add_argument("--sheet", default=None)

    return parser


def main(argv: list[str] | None = None) -> int:
    settings = Settings()
    args = build_parser(settings.APP_NAME).parse_args(argv)

    setup_logging(settings.LOG_LEVEL, settings.LOG_FILE)
    settings.ensure_instance()

    engine = create_engine_from_url(settings.DATABASE_URL)
    init_db(engine)
    session_factory = make_session_factory(engine)

    try:
        if args.command == "extract":
            lines = KitSheetReader(_workbook(args, settings), settings.KITS_WORKSHEET_NAME).read_lines()
            result = extract(lines)
            _print(
                {
                    "kits": [k.to_json() for k in result.kits],
                    "diagnostics": [d.to_json() for d in result.diagnostics],
                }
            )
            return 0

        if args.command == "import-products":
            reader = ProductSheetReader(Path(args.xlsx), args.sheet or settings.PRODUCTS_WORKSHEET_NAME)
            products = reader.read_products()
            with session_scope(session_factory) as session:
                changed = ProductRepo(session).upsert_many(products)
            _print({"imported": len(products), "upserted": changed})
            return 0

        service = SincronizadorKits(session_factory, settings, key=getattr(args, "key", None))

        if args.command == "stats":
            _print(service.statistics())
            return 0

        if args.command == "upsert":
            lines = KitSheetReader(_workbook(args, settings), settings.KITS_WORKSHEET_NAME).read_lines()
            _print(service.upsert(extract(lines).kits).to_json())
            return 0

        report = service.importar_desde_excel(
            _workbook(args, settings),
            preview=args.command == "preview",
            bulk=bool(getattr(args, "bulk", False)),
        )
        _print(report)
        return 0 if report.get("ok") else 1
    except KitsError as e:
        logger.error("%s", e)
        _print({"ok": False, "error": e.message, "kind": e.kind})
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
