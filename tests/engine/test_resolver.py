from __future__ import annotations

from types import MappingProxyType

import pytest

from sheetbuilder.engine import models
from sheetbuilder.engine.errors import FormulaError
from sheetbuilder.engine.resolver import resolve
from sheetbuilder.engine.resolver import strip_computed
from sheetbuilder.engine.schema import Schema


def _schema(**computable: str) -> Schema:
    return Schema(computable=MappingProxyType(computable))


def _mod(key: str, value: float, operator: str = "add") -> models.Modifier:
    return models.Modifier(key=key, formula=str(value), operator=operator, value=value)


def test_acyclic_schema_fully_resolves():
    schema = _schema(x="y + 1", y="z * 2", z="3")
    resolution = resolve(schema, {}, {})
    assert resolution.complete
    assert resolution.props == {"x": 7, "y": 6, "z": 3}
    assert resolution.passes <= len(schema.keys)


def test_forward_references_need_extra_passes():
    resolution = resolve(_schema(x="y + 1", y="z * 2", z="3"), {}, {})
    assert resolution.passes == 3


def test_cycle_terminates_unresolved():
    resolution = resolve(_schema(a="b + 1", b="a + 1"), {}, {})
    assert not resolution.complete
    assert resolution.unresolved == {"a": "b + 1", "b": "a + 1"}
    assert "a" not in resolution.props
    assert "b" not in resolution.props
    assert resolution.passes == 1


def test_partial_cycle_resolves_independent_keys():
    resolution = resolve(_schema(a="b + 1", b="a + 1", c="base * 2"), {}, {"base": 4})
    assert resolution.unresolved == {"a": "b + 1", "b": "a + 1"}
    assert resolution.props["c"] == 8


def test_missing_raw_input_is_reported():
    resolution = resolve(_schema(dex_mod="dex - 10"), {}, {})
    assert resolution.unresolved == {"dex_mod": "dex - 10"}


def test_raw_props_are_not_modified():
    raw = {"base": 4, "c": 100}
    resolve(_schema(c="base * 2"), {}, raw)
    assert raw == {"base": 4, "c": 100}


def test_stale_computed_values_are_stripped():
    """A value saved in a computed slot must not satisfy a reference to it."""
    resolution = resolve(_schema(a="b + 1", b="a + 1"), {}, {"a": 1, "b": 2})
    assert resolution.unresolved == {"a": "b + 1", "b": "a + 1"}
    assert "a" not in resolution.props


def test_idempotence():
    schema = _schema(x="y + 1", y="z * 2", z="base", total="attacks.0.bonus + x")
    raw = {"base": 3, "attacks": {"0": {"bonus": 1}}}
    first = resolve(schema, {}, raw)
    second = resolve(schema, {}, first.props)
    assert first.props == second.props


def test_table_expansion_skips_deleted_rows():
    schema = _schema(**{"attacks.total": "bonus + level"})
    raw = {
        "level": 3,
        "attacks": {
            "r1": {"bonus": 1, "deleted": False},
            "r2": {"bonus": 2, "deleted": True},
            "r3": {"bonus": 5},
        },
    }
    resolution = resolve(schema, {}, raw)
    assert resolution.complete
    rows = resolution.props["attacks"]
    assert rows["r1"]["total"] == 4
    assert rows["r3"]["total"] == 8
    assert rows["r2"] == {"bonus": 2, "deleted": True}


def test_empty_table_counts_as_resolved():
    resolution = resolve(_schema(**{"attacks.total": "bonus"}, other="1"), {}, {})
    assert resolution.complete
    assert resolution.props == {"other": 1}


def test_table_field_waits_for_every_row():
    schema = _schema(**{"attacks.total": "bonus + level"})
    raw = {"level": 1, "attacks": {"r1": {"bonus": 1}, "r2": {}}}
    resolution = resolve(schema, {}, raw)
    assert resolution.unresolved == {"attacks.total": "bonus + level"}
    assert "total" not in resolution.props["attacks"]["r1"]


def test_table_field_depending_on_computed_key():
    schema = _schema(**{"attacks.total": "bonus + might"}, might="str + 1")
    raw = {"str": 2, "attacks": {"r1": {"bonus": 1}}}
    resolution = resolve(schema, {}, raw)
    assert resolution.complete
    assert resolution.props["attacks"]["r1"]["total"] == 4


def test_modifier_ordering():
    modifiers = {"toughness": [_mod("toughness", 2), _mod("toughness", 1.5, "multiply")]}
    resolution = resolve(_schema(toughness="10"), modifiers, {})
    assert resolution.props["toughness"] == 18


def test_modifiers_only_target_their_key():
    modifiers = {"other": [_mod("other", 5)]}
    resolution = resolve(_schema(toughness="10"), modifiers, {})
    assert resolution.props["toughness"] == 10


def test_modifiers_do_not_apply_to_table_fields():
    schema = _schema(**{"attacks.total": "bonus"})
    modifiers = {"attacks.total": [_mod("attacks.total", 5)]}
    resolution = resolve(schema, modifiers, {"attacks": {"r1": {"bonus": 1}}})
    assert resolution.props["attacks"]["r1"]["total"] == 1


def test_plain_text_labels_resolve():
    resolution = resolve(_schema(label="Strength Score", might="str * 2"), {}, {"str": 3})
    assert resolution.complete
    assert resolution.props["label"] == "Strength Score"
    assert resolution.props["might"] == 6


def test_formula_errors_abort_resolution():
    with pytest.raises(FormulaError):
        resolve(_schema(a="1 +", b="2"), {}, {})


def test_strip_computed():
    schema = _schema(**{"attacks.total": "bonus", "might": "1", "stats.dex_mod": "1"})
    raw = {
        "might": 3,
        "keep": None,
        "attacks": {
            "r1": {"bonus": 1, "total": 9},
            "r2": {"bonus": 1, "total": 9, "deleted": True},
        },
        "stats": {"dex_mod": 4, "dex": 12},
    }
    props = strip_computed(schema, raw)
    assert props == {
        "attacks": {
            "r1": {"bonus": 1},
            "r2": {"bonus": 1, "total": 9, "deleted": True},
        },
        "stats": {"dex_mod": 4, "dex": 12},
    }
