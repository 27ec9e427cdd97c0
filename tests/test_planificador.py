"""
Kits Sync - Planner Tests
Tests for partitioning incoming and persisted kits.
"""

from types import SimpleNamespace

import pytest

from kits.planificador import MatchKey, plan_sync, preview_sync


def persisted(name, category="CASA"):
    return SimpleNamespace(id=f"id-{name}-{category}", name=name, category=category)


class TestMatchKey:
    """Tests for MatchKey parsing."""

    def test_parse_values(self):
        assert MatchKey.parse("name") is MatchKey.NAME
        assert MatchKey.parse("Name + Category") is MatchKey.NAME_CATEGORY
        assert MatchKey.parse("name_category") is MatchKey.NAME_CATEGORY
        assert MatchKey.parse(MatchKey.NAME) is MatchKey.NAME

    def test_parse_unknown(self):
        with pytest.raises(ValueError):
            MatchKey.parse("id")


class TestPlanSync:
    """Tests for plan_sync."""

    def test_old_kit_new_kit(self, kit_factory):
        plan = plan_sync([kit_factory("New Kit")], [persisted("Old Kit")])

        assert [r.name for r in plan.to_create] == ["New Kit"]
        assert plan.to_update == []
        assert [k.name for k in plan.to_delete] == ["Old Kit"]

    def test_buckets_are_disjoint_and_cover_everything(self, kit_factory):
        incoming = [kit_factory("A"), kit_factory("B"), kit_factory("C")]
        db = [persisted("B"), persisted("C"), persisted("D")]
        plan = plan_sync(incoming, db)

        created = {r.name for r in plan.to_create}
        updated = {r.name for r, _ in plan.to_update}
        deleted = {k.name for k in plan.to_delete}

        assert created == {"A"}
        assert updated == {"B", "C"}
        assert deleted == {"D"}
        assert created | updated == {"A", "B", "C"}
        assert not (created & updated)
        assert plan.incoming_count == 3

    def test_update_pairs_with_persisted_row(self, kit_factory):
        row = persisted("B")
        plan = plan_sync([kit_factory("B")], [row])
        assert plan.to_update[0][1] is row

    def test_matching_is_case_sensitive(self, kit_factory):
        plan = plan_sync([kit_factory("kit a")], [persisted("Kit A")])
        assert len(plan.to_create) == 1
        assert len(plan.to_delete) == 1

    def test_name_key_ignores_category(self, kit_factory):
        plan = plan_sync([kit_factory("A", category="CABINA")], [persisted("A", "CASA")])
        assert len(plan.to_update) == 1

    def test_name_category_key(self, kit_factory):
        plan = plan_sync(
            [kit_factory("A", category="CABINA")],
            [persisted("A", "CASA")],
            MatchKey.NAME_CATEGORY,
        )
        assert len(plan.to_create) == 1
        assert len(plan.to_delete) == 1

    def test_no_deletes_when_disabled(self, kit_factory):
        plan = plan_sync([kit_factory("A")], [persisted("B")], allow_delete=False)
        assert plan.to_delete == []

    def test_empty_incoming_deletes_all(self):
        plan = plan_sync([], [persisted("A"), persisted("B")])
        assert {k.name for k in plan.to_delete} == {"A", "B"}

    def test_duplicate_incoming_keeps_first(self, kit_factory):
        first = kit_factory("A", products=(("P1", 1),))
        second = kit_factory("A", products=(("P2", 1),))
        plan = plan_sync([first, second], [])

        assert plan.to_create == [first]
        assert len(plan.conflicts) == 1
        assert plan.conflicts[0].name == "A"

    def test_duplicate_persisted_left_alone(self, kit_factory):
        a1, a2 = persisted("A", "CASA"), persisted("A", "CABINA")
        plan = plan_sync([kit_factory("A")], [a1, a2])

        assert plan.to_update[0][1] is a1
        assert a2 not in plan.to_delete
        assert len(plan.conflicts) == 1


class TestPreviewSync:
    """Tests for preview_sync."""

    def test_summary_counts(self, kit_factory):
        plan = plan_sync([kit_factory("A"), kit_factory("B")], [persisted("B"), persisted("C")])
        preview = preview_sync(plan)

        assert preview.to_create == ["A"]
        assert preview.to_update == ["B"]
        assert preview.to_delete == ["C"]
        assert preview.summary["total"] == 3
        assert preview.to_json()["summary"]["deletes"] == 1


class TestRepeatedPersistedNames:
    """Tests for name matching when stored kits share a name."""

    def test_same_category_row_is_updated(self, kit_factory):
        casa, cabina = persisted("A", "CASA"), persisted("A", "CABINA")
        plan = plan_sync([kit_factory("A", category="CABINA")], [casa, cabina])

        assert plan.to_update[0][1] is cabina
        assert plan.to_delete == []
        assert [c.name for c in plan.conflicts] == ["A"]

    def test_unmatched_group_deletes_first_row_only(self):
        first, second = persisted("A", "CASA"), persisted("A", "CABINA")
        plan = plan_sync([], [first, second])

        assert plan.to_delete == [first]
        assert len(plan.conflicts) == 1
