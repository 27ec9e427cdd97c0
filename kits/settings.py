from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()


@dataclass(frozen=True)
class Settings:
    # App
    APP_NAME: str = os.environ.get("APP_NAME", "Kits Sync")

    # Storage
    INSTANCE_DIR: Path = Path(os.environ.get("INSTANCE_DIR", "instance")).resolve()
    DATABASE_URL: str = os.environ.get(
        "DATABASE_URL", f"sqlite:///{(Path('instance') / 'kits.sqlite').as_posix()}"
    )

    # Workbook
    KITS_WORKBOOK_PATH: str = os.environ.get("KITS_WORKBOOK_PATH", "KITS.xlsx")
    KITS_WORKSHEET_NAME: str = os.environ.get("KITS_WORKSHEET_NAME", "KITS CASA Y PROTOCOLOS CABINA")
    PRODUCTS_WORKSHEET_NAME: str = os.environ.get("PRODUCTS_WORKSHEET_NAME", "PRODUCTOS")

    # Sync: "name" (full sync) or "name+category"
    KITS_MATCH_KEY: str = os.environ.get("KITS_MATCH_KEY", "name")

    # Logging
    LOG_LEVEL: str = os.environ.get("LOG_LEVEL", "INFO")
    LOG_FILE: str = os.environ.get("LOG_FILE", "")

    def __post_init__(self) -> None:
        db_url_env_set = os.environ.get("DATABASE_URL") is not None

        # Always resolve INSTANCE_DIR; many other paths depend on it.
        object.__setattr__(self, "INSTANCE_DIR", Path(self.INSTANCE_DIR).resolve())

        # If DATABASE_URL was not explicitly provided, always place the DB inside INSTANCE_DIR.
        if not db_url_env_set:
            abs_db = (self.INSTANCE_DIR / "kits.sqlite").resolve()
            object.__setattr__(self, "DATABASE_URL", f"sqlite:///{abs_db.as_posix()}")
            return

        db = str(self.DATABASE_URL or "").strip()
        if not db:
            abs_db = (self.INSTANCE_DIR / "kits.sqlite").resolve()
            object.__setattr__(self, "DATABASE_URL", f"sqlite:///{abs_db.as_posix()}")
            return

        # Normalize SQLite URLs so they don't depend on the process working directory.
        if db.startswith("sqlite:///") and not db.startswith("sqlite:////"):
            path_part = db[len("sqlite:///") :]
            if "?" in path_part:
                path_part = path_part.split("?", 1)[0]
            if not path_part or path_part == ":memory:":
                return

            p = Path(path_part)
            if not p.is_absolute():
                project_root = Path(__file__).resolve().parents[1]
                abs_path = (project_root / p).resolve()
                object.__setattr__(self, "DATABASE_URL", f"sqlite:///{abs_path.as_posix()}")

    def ensure_instance(self) -> None:
        self.INSTANCE_DIR.mkdir(parents=True, exist_ok=True)

    def workbook_path(self) -> Path:
        p = Path(self.KITS_WORKBOOK_PATH)
        if not p.is_absolute():
            p = self.INSTANCE_DIR / p
        return p.resolve()
