from __future__ import annotations

import dataclasses
from copy import deepcopy
from functools import cached_property
from typing import Any
from typing import Iterable
from typing import Literal

from . import models
from . import utils
from .aggregator import aggregate
from .bars import adjust_bar_value
from .bars import resolve_bars
from .decision import Decision
from .errors import BarInputError
from .formulas import ComputedPhrase
from .formulas import Evaluator
from .formulas import evaluate
from .logging import bind_context
from .logging import clear_context
from .logging import get_logger
from .messages import MessageSink
from .messages import Speaker
from .resolver import resolve
from .rolls import custom_rolls
from .rolls import roll
from .schema import Schema
from .schema import build_schema

logger = get_logger(__name__)

_NOT_A_TEMPLATE = Decision(success=False, reason="Templates can not hold items")


@dataclasses.dataclass
class DerivedData:
    """Everything computed from an actor document in one batch.

    Attributes:
        props: Raw props with every computable property resolved.
        attribute_bars: Resolved bars by key.
        unresolved: Computable keys that could not be resolved, with their formulas.
        modifiers: Modifier groups that were applied, by target key.
        schema: The schema the data was computed from.
    """

    props: models.Props
    attribute_bars: dict[str, models.AttributeBar]
    unresolved: dict[str, models.Formula]
    modifiers: dict[str, list[models.Modifier]]
    schema: Schema


@dataclasses.dataclass(frozen=True)
class Removal:
    """Explicit removal of a stored value that the template no longer defines."""

    path: str
    kind: Literal["prop", "bar"] = "prop"


@dataclasses.dataclass
class ActorUpdate:
    """The changes a template reload makes to an actor.

    Layout fields are replaced wholesale. Raw props are kept, except those
    listed in `removals`.
    """

    template: str
    header: models.Panel | None
    body: models.Panel | None
    hidden: list[models.HiddenAttribute]
    display: dict[str, Any]
    attribute_bar: dict[str, models.AttributeBarDef]
    active_effects: dict[str, list[models.ModifierDef]]
    removals: list[Removal] = dataclasses.field(default_factory=list)

    def apply(self, model: models.CharacterModel) -> None:
        model.template = self.template
        model.header = self.header
        model.body = self.body
        model.hidden = self.hidden
        model.display = self.display
        model.attribute_bar = self.attribute_bar
        model.active_effects = self.active_effects
        for removal in self.removals:
            if removal.kind == "prop":
                model.props.pop(removal.path, None)
            else:
                model.attribute_bar.pop(removal.path, None)


class CharacterController:
    """Computes and edits a single actor document.

    Derived data is cached; anything that mutates the model through this
    controller clears the cache, but code that edits `model` directly must
    call `clear_caches` itself.
    """

    model: models.CharacterModel

    def __init__(
        self,
        model: models.CharacterModel,
        *,
        evaluator: Evaluator = evaluate,
        sink: MessageSink | None = None,
    ):
        self.model = model
        self.evaluator = evaluator
        self.sink = sink

    def clear_caches(self):
        """Clear any cached data that might need to be recomputed upon mutating the character model."""
        for attr in ("schema", "derived"):
            self.__dict__.pop(attr, None)

    @property
    def is_template(self) -> bool:
        return self.model.is_template

    @cached_property
    def schema(self) -> Schema:
        return build_schema(
            self.model.header,
            self.model.body,
            self.model.hidden,
            self.model.attribute_bar,
        )

    @cached_property
    def derived(self) -> DerivedData | None:
        return self.prepare_derived_data()

    def prepare_derived_data(self) -> DerivedData | None:
        """Run aggregation, resolution and bar resolution on the actor.

        Templates hold no values of their own, so they have no derived data.
        """
        if self.is_template:
            return None
        bind_context(actor_id=self.model.id, actor=self.model.name)
        try:
            schema = self.schema
            modifiers = aggregate(
                self.model.items,
                self.model.active_effects,
                self.model.effects,
                self.model.props,
                evaluator=self.evaluator,
            )
            resolution = resolve(
                schema, modifiers, self.model.props, evaluator=self.evaluator
            )
            bars = resolve_bars(
                schema.attribute_bar, resolution.props, evaluator=self.evaluator
            )
            logger.info(
                "Prepared derived data",
                passes=resolution.passes,
                unresolved=sorted(resolution.unresolved),
            )
        finally:
            clear_context()
        return DerivedData(
            props=resolution.props,
            attribute_bars=bars,
            unresolved=resolution.unresolved,
            modifiers=modifiers,
            schema=schema,
        )

    @property
    def props(self) -> models.Props:
        """Resolved props, or the raw props of a template."""
        if (derived := self.derived) is None:
            return self.model.props
        return derived.props

    @property
    def attribute_bars(self) -> dict[str, models.AttributeBar]:
        if (derived := self.derived) is None:
            return {}
        return derived.attribute_bars

    def get_roll_data(self) -> dict[str, Any]:
        """Context for formulas evaluated outside of the sheet (macros, chat commands)."""
        return {**deepcopy(self.props), "name": self.model.name}

    def get_custom_rolls(self) -> dict[str, dict[str, str]]:
        return custom_rolls(self.schema)

    def get_keys(self) -> set[str]:
        """Every property key the actor's template defines."""
        return {
            *(h.name for h in self.model.hidden),
            *self.schema.keyed_properties,
            "name",
        }

    def roll(
        self, roll_key: str, post_message: bool = True, alternative: bool = False
    ) -> ComputedPhrase:
        return roll(
            roll_key,
            self.schema,
            self.props,
            alternative=alternative,
            post_message=post_message,
            sink=self.sink,
            speaker=Speaker(actor_id=self.model.id, alias=self.model.name),
        )

    def reload_template(self, template: models.CharacterModel) -> ActorUpdate:
        """Copy the layout of a template onto this actor.

        Stored props whose key the template no longer defines, and bars the
        template no longer defines, are removed.
        """
        new_schema = build_schema(
            template.header, template.body, template.hidden, template.attribute_bar
        )
        keys = {*(h.name for h in template.hidden), *new_schema.keyed_properties, "name"}
        update = ActorUpdate(
            template=template.id,
            header=template.header.model_copy(deep=True) if template.header else None,
            body=template.body.model_copy(deep=True) if template.body else None,
            hidden=[h.model_copy() for h in template.hidden],
            display=dict(template.display),
            attribute_bar={k: v.model_copy() for k, v in template.attribute_bar.items()},
            active_effects={
                status: [m.model_copy() for m in mods]
                for status, mods in template.active_effects.items()
            },
        )
        update.removals.extend(
            Removal(path=key) for key in self.model.props if key not in keys
        )
        update.removals.extend(
            Removal(path=key, kind="bar")
            for key in self.model.attribute_bar
            if key not in template.attribute_bar
        )
        update.apply(self.model)
        self.clear_caches()
        logger.info(
            "Reloaded template",
            actor_id=self.model.id,
            template=template.id,
            removals=[r.path for r in update.removals],
        )
        return update

    def can_add_item(self, item: models.ItemModel) -> Decision:
        if self.is_template:
            return _NOT_A_TEMPLATE
        if item.type != "equippableItem":
            return Decision(
                success=False, reason=f"Items of type {item.type} can not be attached"
            )
        if item.unique and any(
            i.source_id == item.source_id for i in self.model.items if i.source_id
        ):
            return Decision(
                success=False, reason=f"{item.name or item.id} is unique and already attached"
            )
        return Decision.SUCCESS

    def add_items(self, items: Iterable[models.ItemModel]) -> list[Decision]:
        """Attach items, skipping those that can't be attached.

        Returns one decision per item, in order.
        """
        decisions = []
        for item in items:
            decision = self.can_add_item(item)
            if decision:
                self.model.items.append(item)
            else:
                logger.info("Item rejected", item=item.id, reason=decision.reason)
            decisions.append(decision)
        self.clear_caches()
        return decisions

    def remove_item(self, item_id: str) -> Decision:
        for i, item in enumerate(self.model.items):
            if item.id == item_id:
                del self.model.items[i]
                self.clear_caches()
                return Decision.SUCCESS
        return Decision(success=False, reason=f"No item {item_id}")

    def update_bar(self, key: str, text: str, display: str = "bar") -> int | float:
        """Adjust a bar from token HUD style input and store the new value.

        Raises:
            BarInputError: Unknown bar, or invalid input.
        """
        if (bar := self.attribute_bars.get(key)) is None:
            raise BarInputError(f"Unknown attribute bar {key}", details={"key": key})
        value = adjust_bar_value(bar.value, text, maximum=bar.max, clamp=display == "bar")
        utils.set_path(self.model.props, key, value)
        self.clear_caches()
        return value
