from __future__ import annotations

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from kits.db import create_engine_from_url, init_db, make_session_factory
from kits.settings import Settings
from kits.sincronizacion import SincronizadorKits


def main() -> int:
    settings = Settings()
    settings.ensure_instance()

    engine = create_engine_from_url(settings.DATABASE_URL)
    init_db(engine)
    sf = make_session_factory(engine)

    xlsx = Path(sys.argv[1]) if len(sys.argv) > 1 else settings.workbook_path()
    if not xlsx.is_absolute():
        xlsx = (ROOT / xlsx).resolve()

    report = SincronizadorKits(sf, settings).importar_desde_excel(xlsx)
    if not report.get("ok"):
        print("error:", report.get("error"))
        return 1

    summary = report["result"]["summary"]
    print("kits", summary["total"], "ok", summary["successful"], "failed", summary["failed"])
    for err in report["result"]["errors"]:
        print(" -", err["name"], ":", err["error"])
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
