# tests/unit/test_patching.py
"""
针对 `t3lang.patching` 模块的单元测试。

这些变换都是纯函数：输入文档永远不会被修改。
"""

from t3lang.patching import (
    append_unit,
    apply_changes,
    derive_units,
    make_language_variant,
    overlay_units,
    remove_unit,
    reorder_units,
    set_version,
    unmatched_changes,
)
from t3lang.types import UnitChange, UnitField
from tests.helpers.fakes import make_document


def test_apply_changes_does_not_mutate_input() -> None:
    doc = make_document([("a", "Hello", "")])
    result = apply_changes(
        doc,
        [UnitChange(unit_id="a", field=UnitField.TARGET, old_value="", new_value="Hallo")],
    )

    assert result.files[0].units[0].target == "Hallo"
    assert doc.files[0].units[0].target == ""


def test_renames_and_field_edits_apply_consistently() -> None:
    """测试同一批次中的重命名与字段修改都按修改前的 id 定位。"""
    doc = make_document([("a", "Hello", "")])
    result = apply_changes(
        doc,
        [
            UnitChange(unit_id="a", field=UnitField.ID, old_value="a", new_value="greeting"),
            UnitChange(unit_id="a", field=UnitField.TARGET, old_value="", new_value="Hallo"),
        ],
    )

    unit = result.files[0].units[0]
    assert (unit.id, unit.target) == ("greeting", "Hallo")


def test_swapped_ids_are_applied_without_collision() -> None:
    doc = make_document([("a", "A", "1"), ("b", "B", "2")])
    result = apply_changes(
        doc,
        [
            UnitChange(unit_id="a", field=UnitField.ID, old_value="a", new_value="b"),
            UnitChange(unit_id="b", field=UnitField.ID, old_value="b", new_value="a"),
        ],
    )

    assert [(u.id, u.source) for u in result.files[0].units] == [("b", "A"), ("a", "B")]


def test_unknown_fields_survive_apply() -> None:
    doc = make_document([("a", "Hello", "")], original="locallang.xlf")
    result = apply_changes(doc, [])
    assert result.model_dump()["original"] == "locallang.xlf"


def test_unmatched_changes() -> None:
    doc = make_document([("a", "Hello", "")])
    orphan = UnitChange(unit_id="ghost", field=UnitField.TARGET, old_value="", new_value="x")
    assert unmatched_changes(doc, [orphan]) == [orphan]


def test_derive_units_normalizes_targets() -> None:
    doc = make_document([("a", "Hello", None), ("b", "World", "Welt")])

    units = derive_units(doc, is_source_only=False)
    assert [u.target for u in units] == ["", "Welt"]

    source_units = derive_units(doc, is_source_only=True)
    assert [u.target for u in source_units] == ["", ""]


def test_overlay_units_copies_only_changed_units() -> None:
    units = derive_units(make_document([("a", "A", ""), ("b", "B", "")]), False)
    result = overlay_units(
        units,
        [UnitChange(unit_id="b", field=UnitField.TARGET, old_value="", new_value="x")],
    )

    assert result[0] is units[0]
    assert result[1] is not units[1]
    assert result[1].target == "x"
    assert units[1].target == ""


def test_reorder_units_moves_unlisted_units_to_tail() -> None:
    doc = make_document([("a", "", ""), ("b", "", ""), ("c", "", ""), ("d", "", "")])
    result = reorder_units(doc, ["c", "a"])
    assert [u.id for u in result.files[0].units] == ["c", "a", "b", "d"]


def test_set_version_and_remove_unit() -> None:
    doc = make_document([("a", "", ""), ("b", "", "")])
    assert set_version(doc, "2.0").version == "2.0"
    assert doc.version == "1.2"
    assert [u.id for u in remove_unit(doc, "a").files[0].units] == ["b"]


def test_append_unit_ignores_duplicates() -> None:
    doc = make_document([("a", "A", "")])

    appended = append_unit(doc, "b", "B", with_target=True)
    assert [(u.id, u.target) for u in appended.files[0].units] == [("a", ""), ("b", "")]

    source_only = append_unit(doc, "b", "B", with_target=False)
    assert source_only.files[0].units[-1].target is None

    assert len(append_unit(doc, "a", "again", with_target=True).files[0].units) == 1


def test_make_language_variant_clears_targets() -> None:
    doc = make_document([("a", "Hello", "Hallo")], target_language="de")
    variant = make_language_variant(doc, "fr")

    assert variant.files[0].target_language == "fr"
    assert variant.files[0].units[0].target == ""
    assert variant.files[0].units[0].source == "Hello"
    assert doc.files[0].units[0].target == "Hallo"
