from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from kits.db import session_scope
from kits.errors import KitsError, ProductNotFoundError, SyncFatalError, translate_db_error
from kits.excel_import import KitSheetReader
from kits.extraccion import extract
from kits.models import Kit, new_kit_id
from kits.planificador import MatchKey, SyncPlan, SyncPreview, plan_sync, preview_sync
from kits.repos import KitRepo, ProductRepo, kit_values
from kits.settings import Settings
from kits.tipos import KitRecord, ProtocolSteps

logger = logging.getLogger(__name__)

# One sync at a time per process; kits carry no version column.
_SYNC_LOCK = threading.Lock()


@dataclass(frozen=True)
class SyncItemError:
    name: str
    error: str
    kind: str = "error"

    def to_json(self) -> dict:
        return {"name": self.name, "error": self.error, "kind": self.kind}


@dataclass
class SyncResult:
    created: int = 0
    updated: int = 0
    deleted: int = 0
    errors: list[SyncItemError] = field(default_factory=list)
    details: dict[str, list[str]] = field(
        default_factory=lambda: {"created_kits": [], "updated_kits": [], "deleted_kits": []}
    )
    summary: dict[str, int] = field(default_factory=lambda: {"total": 0, "successful": 0, "failed": 0})

    def record_created(self, name: str) -> None:
        self.created += 1
        self.details["created_kits"].append(name)

    def record_updated(self, name: str) -> None:
        self.updated += 1
        self.details["updated_kits"].append(name)

    def record_deleted(self, name: str) -> None:
        self.deleted += 1
        self.details["deleted_kits"].append(name)

    def record_error(self, name: str, error: str, kind: str = "error") -> None:
        self.errors.append(SyncItemError(name=name, error=error, kind=kind))

    def finish(self, total: int) -> "SyncResult":
        self.summary = {
            "total": int(total),
            "successful": self.created + self.updated + self.deleted,
            "failed": len(self.errors),
        }
        return self

    def to_json(self) -> dict:
        return {
            "created": self.created,
            "updated": self.updated,
            "deleted": self.deleted,
            "errors": [e.to_json() for e in self.errors],
            "details": {k: list(v) for k, v in self.details.items()},
            "summary": dict(self.summary),
        }


class SyncExecutor:
    """Applies a SyncPlan inside the caller's open transaction.

    Each kit runs in its own SAVEPOINT: an unknown product code or a
    uniqueness violation rolls back only that kit and is recorded in
    ``errors``. Anything else propagates and the caller rolls back.
    """

    def __init__(self, session: Session):
        self.session = session
        self.kits = KitRepo(session)
        self.products = ProductRepo(session)

    def _fail(self, result: SyncResult, name: str, exc: Exception, prefix: str = "", kind: str | None = None) -> None:
        err = translate_db_error(exc)
        logger.error("Error processing kit %s: %s", name, err.message)
        result.record_error(name, f"{prefix}{err.message}", kind or err.kind)

    def _update(self, record: KitRecord, kit: Kit, result: SyncResult) -> None:
        try:
            with self.session.begin_nested():
                self.kits.save(kit, record, self.products.resolve(record.products))
        except (KitsError, IntegrityError) as e:
            self._fail(result, record.name, e)
            return
        result.record_updated(record.name)
        logger.info("Updated kit: %s", record.name)

    def _create(self, record: KitRecord, result: SyncResult) -> None:
        try:
            with self.session.begin_nested():
                self.kits.create(record, self.products.resolve(record.products))
        except (KitsError, IntegrityError) as e:
            self._fail(result, record.name, e)
            return
        result.record_created(record.name)
        logger.info("Created kit: %s", record.name)

    def _delete(self, kit: Kit, result: SyncResult) -> None:
        name = kit.name
        try:
            with self.session.begin_nested():
                self.kits.remove(kit)
        except (KitsError, IntegrityError) as e:
            self._fail(result, name, e, prefix="Delete error: ", kind="delete")
            return
        result.record_deleted(name)
        logger.info("Deleted kit: %s", name)

    def execute(self, plan: SyncPlan) -> SyncResult:
        result = SyncResult()
        for conflict in plan.conflicts:
            result.record_error(conflict.name, conflict.error, "conflict")

        for record, kit in plan.to_update:
            self._update(record, kit, result)
        for record in plan.to_create:
            self._create(record, result)
        for kit in plan.to_delete:
            self._delete(kit, result)

        return result.finish(plan.incoming_count + len(plan.to_delete))

    def execute_bulk(self, plan: SyncPlan) -> SyncResult:
        """Same plan, applied with batch statements.

        Product codes are resolved in one query; kits with an unknown code
        are skipped and reported. There are no per-kit savepoints, so a
        storage error fails the whole batch.
        """
        result = SyncResult()
        for conflict in plan.conflicts:
            result.record_error(conflict.name, conflict.error, "conflict")

        records = [r for r, _kit in plan.to_update] + list(plan.to_create)
        catalog = self.products.get_by_codes([ref.code for r in records for ref in r.products])

        def rows_for(record: KitRecord, kit_id: str) -> list[dict] | None:
            missing = next((ref.code for ref in record.products if ref.code not in catalog), None)
            if missing is not None:
                result.record_error(record.name, ProductNotFoundError(missing).message, "not_found")
                return None
            return [
                {"kit_id": kit_id, "product_id": catalog[ref.code].id, "quantity": ref.quantity}
                for ref in record.products
            ]

        update_rows: list[dict] = []
        insert_rows: list[dict] = []
        product_rows: list[dict] = []
        updated_names: list[str] = []
        created_names: list[str] = []

        for record, kit in plan.to_update:
            rows = rows_for(record, kit.id)
            if rows is None:
                continue
            update_rows.append({"id": kit.id, **kit_values(record)})
            product_rows.extend(rows)
            updated_names.append(record.name)

        for record in plan.to_create:
            kit_id = new_kit_id()
            rows = rows_for(record, kit_id)
            if rows is None:
                continue
            insert_rows.append({"id": kit_id, **kit_values(record)})
            product_rows.extend(rows)
            created_names.append(record.name)

        delete_ids = [k.id for k in plan.to_delete]
        deleted_names = [k.name for k in plan.to_delete]

        self.kits.delete_products_of([r["id"] for r in update_rows])
        self.kits.batch_update(update_rows)
        self.kits.batch_insert(insert_rows)
        self.kits.batch_insert_products(product_rows)
        self.kits.batch_delete(delete_ids)

        for name in updated_names:
            result.record_updated(name)
        for name in created_names:
            result.record_created(name)
        for name in deleted_names:
            result.record_deleted(name)
        logger.info(
            "Bulk sync: %s created, %s updated, %s deleted", len(created_names), len(updated_names), len(deleted_names)
        )
        return result.finish(plan.incoming_count + len(plan.to_delete))


def _kit_json(kit: Kit) -> dict:
    return {
        "id": kit.id,
        "category": kit.category,
        "name": kit.name,
        "weight": kit.weight,
        "tips": list(kit.tips or []),
        "protocol": ProtocolSteps.from_json(kit.protocol).to_json(),
        "image_link": kit.image_link,
        "products": [
            {"code": kp.product.code, "name": kp.product.name, "quantity": int(kp.quantity)}
            for kp in kit.kit_products
        ],
    }


class SincronizadorKits:
    """Servicio de sincronización de kits con la base de datos.

    - preview: plan sin escribir nada
    - sync: crear / actualizar / eliminar en una sola transacción
    - upsert: crear / actualizar por nombre + categoría, sin eliminar
    """

    def __init__(self, session_factory, settings: Settings | None = None, *, key: MatchKey | str | None = None):
        self._session_factory = session_factory
        self._settings = settings or Settings()
        self._key = MatchKey.parse(key or self._settings.KITS_MATCH_KEY)

    @property
    def key(self) -> MatchKey:
        return self._key

    def _serializable(self, session: Session) -> None:
        # SQLite transactions are already serializable.
        bind = session.get_bind()
        if getattr(bind.dialect, "name", "") != "sqlite":
            session.connection(execution_options={"isolation_level": "SERIALIZABLE"})

    def preview(self, records: Iterable[KitRecord]) -> SyncPreview:
        records = list(records)
        try:
            with session_scope(self._session_factory) as session:
                persisted = KitRepo(session).list_all()
                return preview_sync(plan_sync(records, persisted, self._key))
        except KitsError:
            raise
        except Exception as e:
            raise translate_db_error(e) from e

    def _run(self, records: Iterable[KitRecord], *, key: MatchKey, allow_delete: bool, bulk: bool) -> SyncResult:
        records = list(records)
        with _SYNC_LOCK:
            try:
                with session_scope(self._session_factory) as session:
                    self._serializable(session)
                    persisted = KitRepo(session).list_all()
                    plan = plan_sync(records, persisted, key, allow_delete=allow_delete)
                    executor = SyncExecutor(session)
                    result = executor.execute_bulk(plan) if bulk else executor.execute(plan)
            except Exception as e:
                logger.exception("Sync operation failed")
                raise SyncFatalError("Failed to sync kits") from e

        logger.info(
            "Sync operation completed: %s created, %s updated, %s deleted, %s errors",
            result.created,
            result.updated,
            result.deleted,
            len(result.errors),
        )
        return result

    def sync(self, records: Iterable[KitRecord], *, bulk: bool = False) -> SyncResult:
        return self._run(records, key=self._key, allow_delete=True, bulk=bulk)

    def upsert(self, records: Iterable[KitRecord]) -> SyncResult:
        return self._run(records, key=MatchKey.NAME_CATEGORY, allow_delete=False, bulk=False)

    def importar_desde_excel(self, xlsx_path: Path | str, *, preview: bool = False, bulk: bool = False) -> dict:
        """Lee la hoja de kits, extrae y sincroniza (o solo muestra el plan)."""
        reader = KitSheetReader(Path(xlsx_path), self._settings.KITS_WORKSHEET_NAME)
        lines = reader.read_lines()
        extracted = extract(lines)
        kits_from_excel = [k.summary() for k in extracted.kits]
        diagnostics = [d.to_json() for d in extracted.diagnostics]

        if not extracted.kits:
            return {
                "ok": False,
                "error": "No valid kits found in Excel file",
                "diagnostics": diagnostics,
            }

        if preview:
            return {
                "ok": True,
                "message": "Preview of changes (not executed)",
                "preview": self.preview(extracted.kits).to_json(),
                "kits_from_excel": kits_from_excel,
                "diagnostics": diagnostics,
            }

        result = self.sync(extracted.kits, bulk=bulk)
        return {
            "ok": True,
            "message": "Kits synchronized successfully with database",
            "result": result.to_json(),
            "kits_from_excel": kits_from_excel,
            "diagnostics": diagnostics,
        }

    # --- single-kit operations ---

    def create_kit(self, record: KitRecord) -> dict:
        try:
            with session_scope(self._session_factory) as session:
                products = ProductRepo(session).resolve(record.products)
                kit = KitRepo(session).create(record, products)
                return _kit_json(kit)
        except KitsError:
            raise
        except Exception as e:
            raise translate_db_error(e) from e

    def list_kits(self) -> list[dict]:
        with session_scope(self._session_factory) as session:
            return [_kit_json(k) for k in KitRepo(session).list_all()]

    def find_one(self, term: str) -> dict:
        with session_scope(self._session_factory) as session:
            return _kit_json(KitRepo(session).find_one(term))

    def find_by_category(self, category: str) -> list[dict]:
        with session_scope(self._session_factory) as session:
            return [_kit_json(k) for k in KitRepo(session).find_by_category(category)]

    def find_by_name_and_category(self, name: str, category: str) -> dict | None:
        with session_scope(self._session_factory) as session:
            kit = KitRepo(session).find_by_name_and_category(name, category)
            return _kit_json(kit) if kit is not None else None

    def remove(self, term: str) -> None:
        with session_scope(self._session_factory) as session:
            repo = KitRepo(session)
            repo.remove(repo.find_one(term))

    def delete_all(self) -> int:
        with _SYNC_LOCK:
            with session_scope(self._session_factory) as session:
                return KitRepo(session).delete_all()

    def statistics(self) -> dict:
        with session_scope(self._session_factory) as session:
            return KitRepo(session).statistics()
