from __future__ import annotations

from typing import Annotated
from typing import Any
from typing import Literal
from typing import TypeAlias
from uuid import uuid4

import pydantic
from pydantic import ConfigDict
from pydantic import Field
from pydantic.alias_generators import to_camel

from . import utils

# Version of the document format written by this engine. Documents written by
# a newer version are rejected by the loader.
SYSTEM_VERSION = "1.4.0"

Formula: TypeAlias = str
PropKey: TypeAlias = str
Props: TypeAlias = dict[str, Any]


class BaseModel(pydantic.BaseModel):
    model_config = ConfigDict(
        extra="forbid",
        alias_generator=to_camel,
        populate_by_name=True,
    )

    def dump(self) -> dict:
        return utils.dump_dict(self)

    def dump_json(self, **kwargs) -> str:
        return utils.dump_json(self, **kwargs)


# -----------------------------------------------------------------------------
# Template components
# -----------------------------------------------------------------------------


class BaseComponent(BaseModel):
    """Fields shared by every node of a template tree.

    Components also carry plenty of rendering data (CSS classes, tooltips,
    alignment, permissions...) that the engine doesn't care about. That data
    is accepted and preserved, but not modeled.

    Attributes:
        key: Property key this component reads and writes. Components without
            a key only exist for layout and never hold data.
    """

    model_config = ConfigDict(extra="allow")

    key: PropKey | None = None


class Label(BaseComponent):
    """Read-only text, usually computed.

    Attributes:
        value: Formula for the displayed value. A keyed label with a value is a
            computable property.
        roll_message: Formula rolled when the label is clicked.
        alt_roll_message: Formula rolled on an alternative click (shift-click).
    """

    type: Literal["label"] = "label"
    value: Formula | None = None
    roll_message: Formula | None = None
    alt_roll_message: Formula | None = None


class TextField(BaseComponent):
    type: Literal["textField"] = "textField"
    label: str | None = None
    default_value: str | None = None


class NumberField(BaseComponent):
    """User-entered number. With `max_val` set, also the source of an attribute bar."""

    type: Literal["numberField"] = "numberField"
    label: str | None = None
    default_value: float | None = None
    allow_relative: bool = False
    allow_decimal: bool = False
    max_val: Formula | float | None = None


class Checkbox(BaseComponent):
    type: Literal["checkbox"] = "checkbox"
    label: str | None = None


class Select(BaseComponent):
    type: Literal["select"] = "select"
    label: str | None = None
    options: list[dict[str, Any]] = Field(default_factory=list)


class TextArea(BaseComponent):
    type: Literal["textArea"] = "textArea"


class Meter(BaseComponent):
    type: Literal["meter"] = "meter"
    value: Formula | None = None
    max_val: Formula | float | None = None


class Panel(BaseComponent):
    type: Literal["panel"] = "panel"
    contents: list[Component] = Field(default_factory=list)


class Tab(BaseComponent):
    type: Literal["tab"] = "tab"
    name: str | None = None
    contents: list[Component] = Field(default_factory=list)


class TabbedPanel(BaseComponent):
    type: Literal["tabbedPanel"] = "tabbedPanel"
    contents: list[Tab] = Field(default_factory=list)


class Table(BaseComponent):
    """Static grid. Each entry of `contents` is one row of cells."""

    type: Literal["table"] = "table"
    cols: int = 1
    rows: int = 1
    contents: list[list[Component]] = Field(default_factory=list)


class DynamicTable(BaseComponent):
    """Repeating rows. `row_layout` describes the columns of a single row.

    Row data lives in the actor's props under `<key>.<row_id>.<column key>`.
    """

    type: Literal["dynamicTable"] = "dynamicTable"
    key: PropKey
    row_layout: list[Component] = Field(default_factory=list)
    head: bool = False
    delete_warning: bool = False


Component: TypeAlias = Annotated[
    Label
    | TextField
    | NumberField
    | Checkbox
    | Select
    | TextArea
    | Meter
    | Panel
    | Tab
    | TabbedPanel
    | Table
    | DynamicTable,
    Field(discriminator="type"),
]

for _model in (Panel, Tab, TabbedPanel, Table, DynamicTable):
    _model.model_rebuild()


# -----------------------------------------------------------------------------
# Modifiers, items and effects
# -----------------------------------------------------------------------------


class ModifierDef(BaseModel):
    """A modifier as declared on an item or in an actor's active effect table.

    Attributes:
        key: Target property key.
        formula: Formula for the modifier amount, evaluated against the item's
            own props (item modifiers) or the actor's raw props (effects).
        operator: Name of the aggregation rule used to combine the amount with
            the property value. See `aggregator.OPERATORS`.
    """

    key: PropKey
    formula: Formula | float
    operator: str = "add"


class Modifier(ModifierDef):
    """A modifier with its amount computed. Never persisted."""

    model_config = ConfigDict(frozen=True)

    value: float
    source: str | None = None


class ItemModel(BaseModel):
    id: str = Field(default_factory=lambda: uuid4().hex)
    name: str = ""
    type: str = "equippableItem"
    template: str | None = None
    props: Props = Field(default_factory=dict)
    modifiers: list[ModifierDef] = Field(default_factory=list)
    unique: bool = False
    source_id: str | None = None
    equipped: bool = True


class ActiveEffect(BaseModel):
    """A status effect applied to an actor (stunned, blessed, ...)."""

    id: str = Field(default_factory=lambda: uuid4().hex)
    status_id: str
    label: str | None = None


class HiddenAttribute(BaseModel):
    """A computed property defined by the template but not shown on the sheet."""

    name: PropKey
    value: Formula | float


class AttributeBarDef(BaseModel):
    """Bar definition, either from the template's bar table or from a component's `maxVal`.

    Attributes:
        value: Optional formula overriding where the bar reads its current value.
            By default, it is the property with the same key as the bar.
        max: Literal or formula for the maximum.
    """

    value: Formula | float | None = None
    max: Formula | float | None = None


class AttributeBar(BaseModel):
    key: PropKey
    value: Any = None
    max: Any = None


# -----------------------------------------------------------------------------
# Actors
# -----------------------------------------------------------------------------


class CharacterModel(BaseModel):
    """An actor document: either a character sheet or a template.

    Templates and characters share the same shape. A character copies its
    layout (header, body, hidden attributes, bars, effect table) from its
    template on reload, and owns its props, items and effects.

    Attributes:
        type: "character" for playable sheets, "_template" for templates.
        template: ID of the template the character was built from.
        system_version: Engine document version the actor was last written with.
        header: Component tree rendered above the body.
        body: Main component tree.
        hidden: Template-level computed properties not bound to a component.
        attribute_bar: Template-level bar definitions, keyed by bar name.
        active_effects: Modifier definitions applied while a status effect with
            the given status ID is active on the actor.
        display: Sheet display settings. Opaque to the engine.
        props: Raw property values entered by the user.
        items: Attached items.
        effects: Status effects currently applied to the actor.
    """

    id: str = Field(default_factory=lambda: uuid4().hex)
    name: str = ""
    type: Literal["character", "_template"] = "character"
    template: str | None = None
    system_version: str = SYSTEM_VERSION
    header: Panel | None = None
    body: Panel | None = None
    hidden: list[HiddenAttribute] = Field(default_factory=list)
    attribute_bar: dict[str, AttributeBarDef] = Field(default_factory=dict)
    active_effects: dict[str, list[ModifierDef]] = Field(default_factory=dict)
    display: dict[str, Any] = Field(default_factory=dict)
    props: Props = Field(default_factory=dict)
    items: list[ItemModel] = Field(default_factory=list)
    effects: list[ActiveEffect] = Field(default_factory=list)

    @property
    def is_template(self) -> bool:
        return self.type == "_template"


class BadDefinition(BaseModel):
    """Represents an actor document that could not be parsed.

    Attributes:
        path: The path of the document file.
        data: Data as parsed from the json/yaml/toml file.
        exception_type: Name of the exception raised by the model parser.
        exception_message: Message of that exception.
    """

    path: str
    data: Any
    exception_type: str
    exception_message: str
