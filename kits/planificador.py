from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Hashable, Iterable, Protocol

from kits.tipos import KitRecord


class MatchKey(str, Enum):
    """Natural key used to pair incoming kits with persisted ones."""

    NAME = "name"
    NAME_CATEGORY = "name+category"

    @classmethod
    def parse(cls, value: str | MatchKey | None) -> MatchKey:
        if isinstance(value, MatchKey):
            return value
        v = (value or "").strip().lower().replace(" ", "")
        for key in cls:
            if key.value == v:
                return key
        if v in ("name,category", "name_category", "namecategory"):
            return cls.NAME_CATEGORY
        raise ValueError(f"Unknown match key: {value!r}")

    def of(self, item: Any) -> Hashable:
        if self is MatchKey.NAME:
            return item.name
        return (item.name, item.category)


class PersistedKitLike(Protocol):
    name: str
    category: str


@dataclass(frozen=True)
class PlanConflict:
    name: str
    error: str


@dataclass
class SyncPlan:
    to_create: list[KitRecord] = field(default_factory=list)
    to_update: list[tuple[KitRecord, Any]] = field(default_factory=list)
    to_delete: list[Any] = field(default_factory=list)
    conflicts: list[PlanConflict] = field(default_factory=list)
    key: MatchKey = MatchKey.NAME
    incoming_count: int = 0


@dataclass(frozen=True)
class SyncPreview:
    to_create: list[str]
    to_update: list[str]
    to_delete: list[str]
    summary: dict

    def to_json(self) -> dict:
        return {
            "to_create": list(self.to_create),
            "to_update": list(self.to_update),
            "to_delete": list(self.to_delete),
            "summary": dict(self.summary),
        }


def plan_sync(
    incoming: Iterable[KitRecord],
    persisted: Iterable[PersistedKitLike],
    key: MatchKey | str = MatchKey.NAME,
    *,
    allow_delete: bool = True,
) -> SyncPlan:
    """Partition incoming/persisted kits into create, update and delete.

    Matching is exact and case-sensitive on ``key``. Repeated keys are
    reported in ``conflicts`` instead of overwriting each other.
    """
    key = MatchKey.parse(key)
    incoming = list(incoming)
    plan = SyncPlan(key=key, incoming_count=len(incoming))

    existing: dict[Hashable, list[Any]] = {}
    for kit in persisted:
        existing.setdefault(key.of(kit), []).append(kit)

    seen: set[Hashable] = set()
    matched: dict[Hashable, Any] = {}
    for record in incoming:
        k = key.of(record)
        if k in seen:
            plan.conflicts.append(PlanConflict(record.name, f"Duplicate kit in sheet for key {k!r}"))
            continue
        seen.add(k)

        rows = existing.get(k)
        if rows:
            # Repeated names: prefer the row in the same category.
            match = next((r for r in rows if r.category == record.category), rows[0])
            matched[k] = match
            plan.to_update.append((record, match))
        else:
            plan.to_create.append(record)

    for k, rows in existing.items():
        keep = matched.get(k)
        if keep is None:
            keep = rows[0]
            if allow_delete:
                plan.to_delete.append(keep)
        for row in rows:
            if row is not keep:
                plan.conflicts.append(
                    PlanConflict(row.name, f"Duplicate persisted kit for key {k!r}; left unchanged")
                )
    return plan


def preview_sync(plan: SyncPlan) -> SyncPreview:
    """Names per bucket; touches nothing."""
    to_create = [r.name for r in plan.to_create]
    to_update = [r.name for r, _kit in plan.to_update]
    to_delete = [k.name for k in plan.to_delete]
    return SyncPreview(
        to_create=to_create,
        to_update=to_update,
        to_delete=to_delete,
        summary={
            "total": len(to_create) + len(to_update) + len(to_delete),
            "creates": len(to_create),
            "updates": len(to_update),
            "deletes": len(to_delete),
            "conflicts": len(plan.conflicts),
        },
    )
