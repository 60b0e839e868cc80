from __future__ import annotations

from sheetbuilder.engine import models
from sheetbuilder.engine.schema import Schema
from sheetbuilder.engine.schema import build_schema
from sheetbuilder.engine.schema import extract
from sheetbuilder.engine.schema import is_table_field
from sheetbuilder.engine.schema import split_table_field


def test_extract_template(template: models.CharacterModel):
    schema = extract(template.body)
    assert dict(schema.computable) == {
        "attack": "might + level",
        "might": "str + level",
        "max_hp": "10 + level",
        "attacks.total": "bonus + level",
    }
    assert dict(schema.rollable) == {
        "attack": "${1d1 + attack}$",
        "attacks.total": "${1d1 + total}$",
    }
    assert dict(schema.alt_rollable) == {"attack": "Attack with ${attack}$ bonus"}
    assert schema.keyed_properties == {
        "attack",
        "might",
        "max_hp",
        "load",
        "attacks",
        "attacks.name",
        "attacks.bonus",
        "attacks.total",
    }


def test_extract_keeps_document_order(template: models.CharacterModel):
    assert list(extract(template.body).computable) == [
        "attack",
        "might",
        "max_hp",
        "attacks.total",
    ]


def test_extract_bar_sources(template: models.CharacterModel):
    schema = extract(template.header)
    assert schema.attribute_bar["hp"].max == "10+str"
    assert schema.computable == {}


def test_unkeyed_components_only_contribute_their_contents():
    panel = models.Panel(
        contents=[
            models.Label(value="Just a heading"),
            models.Label(key="a", value="1"),
        ]
    )
    schema = extract(panel)
    assert dict(schema.computable) == {"a": "1"}
    assert schema.keyed_properties == {"a"}


def test_later_write_wins():
    panel = models.Panel(
        contents=[
            models.Label(key="a", value="1"),
            models.Panel(contents=[models.Label(key="a", value="2")]),
        ]
    )
    assert extract(panel).computable["a"] == "2"


def test_malformed_branches_contribute_nothing():
    assert extract("not a component") == Schema()
    assert extract(None) == Schema()
    assert extract([None, 3, {"key": "x"}]) == Schema()


def test_nested_dynamic_table_prefixes():
    table = models.DynamicTable(
        key="spells",
        row_layout=[
            models.TextField(key="name"),
            models.Label(key="dc", value="8 + level", roll_message="${dc}$"),
            models.NumberField(key="charges", max_val=3),
        ],
    )
    schema = extract(models.Panel(contents=[table]))
    assert dict(schema.computable) == {"spells.dc": "8 + level"}
    assert dict(schema.rollable) == {"spells.dc": "${dc}$"}
    assert schema.attribute_bar["spells.charges"].max == 3


def test_build_schema_order(template: models.CharacterModel):
    """Hidden attributes override body components, template bars come first."""
    hidden = [models.HiddenAttribute(name="might", value="99")]
    bars = {
        "hp": models.AttributeBarDef(max=1),
        "mana": models.AttributeBarDef(max="level"),
    }
    schema = build_schema(template.header, template.body, hidden, bars)
    assert schema.computable["might"] == "99"
    assert schema.attribute_bar["hp"].max == "10+str"
    assert schema.attribute_bar["mana"].max == "level"
    assert list(schema.attribute_bar) == ["hp", "mana"]
    assert "might" in schema.keys


def test_build_schema_without_layout():
    assert build_schema(None, None) == Schema()


def test_table_fields():
    assert is_table_field("attacks.total")
    assert not is_table_field("might")
    assert split_table_field("attacks.total") == ("attacks", "total")
