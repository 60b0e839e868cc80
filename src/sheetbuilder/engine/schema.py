"""Extraction of the computable schema from a template's component tree."""

from __future__ import annotations

import dataclasses
from types import MappingProxyType
from typing import Any
from typing import Iterable
from typing import Mapping

from . import models


def _empty():
    return dataclasses.field(default_factory=lambda: MappingProxyType({}))


@dataclasses.dataclass(frozen=True)
class Schema:
    """Everything the resolvers need to know about a template, flattened.

    Keys of components inside a dynamic table are prefixed with the table key,
    so `attacks.damage` designates the `damage` column of every row in the
    `attacks` table.

    Attributes:
        computable: Property key to the formula computing it.
        rollable: Property key to its main roll formula.
        alt_rollable: Property key to its alternative roll formula.
        attribute_bar: Bar key to its definition.
        keyed_properties: Every key declared by the template, computable or not.
    """

    computable: Mapping[str, models.Formula] = _empty()
    rollable: Mapping[str, models.Formula] = _empty()
    alt_rollable: Mapping[str, models.Formula] = _empty()
    attribute_bar: Mapping[str, models.AttributeBarDef] = _empty()
    keyed_properties: frozenset[str] = frozenset()

    def merge(self, other: Schema) -> Schema:
        """Combine two schemas. On duplicate keys, `other` wins."""
        return Schema(
            computable=MappingProxyType({**self.computable, **other.computable}),
            rollable=MappingProxyType({**self.rollable, **other.rollable}),
            alt_rollable=MappingProxyType({**self.alt_rollable, **other.alt_rollable}),
            attribute_bar=MappingProxyType({**self.attribute_bar, **other.attribute_bar}),
            keyed_properties=self.keyed_properties | other.keyed_properties,
        )

    @property
    def keys(self) -> set[str]:
        """Keys the property resolver has to compute."""
        return set(self.computable)


def is_table_field(key: str) -> bool:
    return "." in key


def split_table_field(key: str) -> tuple[str, str]:
    """`"attacks.damage"` -> `("attacks", "damage")`."""
    table_key, field_key = key.split(".", 1)
    return table_key, field_key


def extract(component: Any, key_prefix: str = "") -> Schema:
    """Build the schema declared by a component and everything below it.

    Lists are folded in document order (table rows are lists of lists). Anything
    that isn't a component or a list contributes nothing.
    """
    match component:
        case list() | tuple():
            return _fold(extract(sub, key_prefix) for sub in component)
        case models.BaseComponent():
            schema = _own_fields(component, key_prefix)
            contents = getattr(component, "contents", None)
            if contents:
                schema = schema.merge(extract(contents, key_prefix))
            if isinstance(component, models.DynamicTable):
                schema = schema.merge(
                    extract(component.row_layout, f"{key_prefix}{component.key}.")
                )
            return schema
        case _:
            return Schema()


def _fold(schemas: Iterable[Schema]) -> Schema:
    result = Schema()
    for schema in schemas:
        result = result.merge(schema)
    return result


def _own_fields(component: models.BaseComponent, key_prefix: str) -> Schema:
    if not component.key:
        return Schema()
    key = key_prefix + component.key
    computable: dict[str, models.Formula] = {}
    rollable: dict[str, models.Formula] = {}
    alt_rollable: dict[str, models.Formula] = {}
    attribute_bar: dict[str, models.AttributeBarDef] = {}

    if roll_message := getattr(component, "roll_message", None):
        rollable[key] = roll_message
    if alt_roll_message := getattr(component, "alt_roll_message", None):
        alt_rollable[key] = alt_roll_message
    if value := getattr(component, "value", None):
        computable[key] = value
    if (max_val := getattr(component, "max_val", None)) is not None:
        attribute_bar[key] = models.AttributeBarDef(max=max_val)

    return Schema(
        computable=MappingProxyType(computable),
        rollable=MappingProxyType(rollable),
        alt_rollable=MappingProxyType(alt_rollable),
        attribute_bar=MappingProxyType(attribute_bar),
        keyed_properties=frozenset([key]),
    )


def build_schema(
    header: models.Panel | None,
    body: models.Panel | None,
    hidden: Iterable[models.HiddenAttribute] = (),
    attribute_bars: Mapping[str, models.AttributeBarDef] | None = None,
) -> Schema:
    """Schema of a whole actor.

    Template-level bars come first, then the header, then the body, and hidden
    attributes override everything else.
    """
    base = Schema(attribute_bar=MappingProxyType(dict(attribute_bars or {})))
    hidden_schema = Schema(
        computable=MappingProxyType({h.name: h.value for h in hidden}),
    )
    return base.merge(extract(header)).merge(extract(body)).merge(hidden_schema)
