from __future__ import annotations

import pytest

from sheetbuilder.engine import aggregator
from sheetbuilder.engine import models
from sheetbuilder.engine.aggregator import Aggregator
from sheetbuilder.engine.aggregator import aggregate
from sheetbuilder.engine.aggregator import apply_modifiers
from sheetbuilder.engine.errors import ConfigurationError
from sheetbuilder.engine.errors import ModifierError


def _mod(key: str, value: float, operator: str = "add") -> models.Modifier:
    return models.Modifier(key=key, formula=str(value), operator=operator, value=value)


def test_apply_modifiers_in_order():
    mods = [_mod("hp.max", 2), _mod("hp.max", 1.5, "multiply")]
    assert apply_modifiers(10, mods) == 18
    assert apply_modifiers(10, list(reversed(mods))) == 17


def test_apply_modifiers_operators():
    assert apply_modifiers(10, [_mod("a", 3, "subtract")]) == 7
    assert apply_modifiers(10, [_mod("a", 4, "divide")]) == 2.5
    assert apply_modifiers(10, [_mod("a", 4, "set"), _mod("a", 1)]) == 5


def test_apply_modifiers_without_modifiers_keeps_value():
    assert apply_modifiers("Sword", []) == "Sword"


def test_apply_modifiers_to_numeric_text():
    assert apply_modifiers("10", [_mod("a", 1)]) == 11


def test_apply_modifiers_to_text_fails():
    with pytest.raises(ModifierError):
        apply_modifiers("Sword", [_mod("a", 1)])


def test_divide_by_zero():
    with pytest.raises(ModifierError):
        apply_modifiers(10, [_mod("a", 0, "divide")])


def test_unknown_operator():
    with pytest.raises(ConfigurationError) as exc_info:
        apply_modifiers(10, [_mod("a", 1, "explode")])
    assert exc_info.value.details["key"] == "a"


def test_register_operator(monkeypatch):
    monkeypatch.setitem(aggregator.OPERATORS, "at_least", max)
    assert apply_modifiers(3, [_mod("a", 5, "at_least")]) == 5
    assert apply_modifiers(8, [_mod("a", 5, "at_least")]) == 8


def test_register_operator_function(monkeypatch):
    monkeypatch.setattr(aggregator, "OPERATORS", dict(aggregator.OPERATORS))
    aggregator.register_operator("at_most", min)
    assert apply_modifiers(8, [_mod("a", 5, "at_most")]) == 5


def test_aggregator_groups_by_key():
    agg = Aggregator()
    agg.add_mod(models.ModifierDef(key="ac", formula="bonus"), {"bonus": 2}, source="shield")
    agg.add_mod(models.ModifierDef(key="ac", formula="1"), {}, source="ring")
    agg.add_mod(models.ModifierDef(key="speed", formula="-10"), {})
    mods = agg.get_mods("ac")
    assert [m.value for m in mods] == [2, 1]
    assert [m.source for m in mods] == ["shield", "ring"]
    assert agg.get_mods("speed")[0].value == -10
    assert agg.get_mods("missing") == []
    assert set(agg.groups) == {"ac", "speed"}


def test_missing_reference_defaults_to_zero():
    agg = Aggregator()
    mod = agg.add_mod(models.ModifierDef(key="ac", formula="enchantment + 1"), {})
    assert mod.value == 1


def test_non_numeric_modifier():
    agg = Aggregator()
    with pytest.raises(ModifierError):
        agg.add_mod(models.ModifierDef(key="ac", formula="name"), {"name": "Shield"})


def test_aggregate_items_then_effects():
    items = [
        models.ItemModel(
            id="belt",
            props={"power": 2},
            modifiers=[models.ModifierDef(key="toughness", formula="power")],
        ),
        models.ItemModel(
            id="unequipped",
            equipped=False,
            modifiers=[models.ModifierDef(key="toughness", formula="100")],
        ),
    ]
    effect_defs = {
        "enraged": [
            models.ModifierDef(key="toughness", formula=1.5, operator="multiply")
        ],
        "unused": [models.ModifierDef(key="toughness", formula="1000")],
    }
    effects = [
        models.ActiveEffect(status_id="enraged"),
        models.ActiveEffect(status_id="undefined-status"),
    ]
    groups = aggregate(items, effect_defs, effects, {})
    assert [(m.source, m.value) for m in groups["toughness"]] == [
        ("belt", 2),
        ("enraged", 1.5),
    ]
    assert apply_modifiers(10, groups["toughness"]) == 18


def test_aggregate_does_not_mutate_definitions():
    definition = models.ModifierDef(key="ac", formula="1")
    item = models.ItemModel(modifiers=[definition])
    before = item.dump()
    aggregate([item], {}, [], {})
    assert item.dump() == before
    assert item.modifiers[0] is definition
