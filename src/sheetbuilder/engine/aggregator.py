from __future__ import annotations

import operator
from collections import defaultdict
from typing import Any
from typing import Callable
from typing import Iterable
from typing import Mapping

from . import models
from .config import get_settings
from .errors import ConfigurationError
from .errors import ModifierError
from .formulas import Evaluator
from .formulas import evaluate
from .logging import get_logger
from .utils import as_number

logger = get_logger(__name__)

Operator = Callable[[float, float], float]


def _divide(value: float, amount: float) -> float:
    if amount == 0:
        raise ModifierError("Modifier divides by zero", details={"value": value})
    return value / amount


# How each modifier's amount is combined with the running value. Applications
# may register additional rules with `register_operator`.
OPERATORS: dict[str, Operator] = {
    "add": operator.add,
    "subtract": operator.sub,
    "multiply": operator.mul,
    "divide": _divide,
    "set": lambda value, amount: amount,
}


def register_operator(name: str, rule: Operator) -> None:
    OPERATORS[name] = rule


def apply_modifiers(base: Any, modifiers: Iterable[models.Modifier]) -> Any:
    """Apply modifiers to a base value, in order.

    Order matters: +2 then x1.5 on 10 gives 18, the reverse gives 17.

    Raises:
        ConfigurationError: A modifier names an unknown operator.
        ModifierError: The base value isn't numeric, or the rule fails.
    """
    modifiers = list(modifiers)
    if not modifiers:
        return base
    value = as_number(base)
    if value is None:
        raise ModifierError(
            "Can not apply modifiers to a non-numeric value",
            details={"value": base, "key": modifiers[0].key},
        )
    for modifier in modifiers:
        try:
            rule = OPERATORS[modifier.operator]
        except KeyError:
            raise ConfigurationError(
                f"Unknown modifier operator {modifier.operator}",
                details={"key": modifier.key, "source": modifier.source},
            ) from None
        value = rule(value, modifier.value)
    return as_number(value)


class Aggregator:
    """Collects computed modifiers, grouped by the property key they target.

    Groups keep insertion order, which is the order `apply_modifiers` uses.
    """

    _mods: defaultdict[str, list[models.Modifier]]

    def __init__(self, evaluator: Evaluator = evaluate):
        self._mods = defaultdict(list)
        self._evaluator = evaluator

    def add_mod(
        self,
        modifier: models.ModifierDef,
        props: Mapping[str, Any],
        source: str | None = None,
    ) -> models.Modifier:
        """Compute a modifier definition against a static context and record it.

        The definition itself is left untouched.
        """
        amount = self._evaluator(
            modifier.formula, props, default_value=get_settings().modifier_default
        )
        value = as_number(amount)
        if value is None:
            raise ModifierError(
                "Modifier formula is not numeric",
                details={"key": modifier.key, "formula": modifier.formula, "value": amount},
            )
        computed = models.Modifier(
            key=modifier.key,
            formula=modifier.formula,
            operator=modifier.operator,
            value=value,
            source=source,
        )
        self._mods[modifier.key].append(computed)
        return computed

    def get_mods(self, key: str) -> list[models.Modifier]:
        return list(self._mods.get(key, ()))

    @property
    def groups(self) -> dict[str, list[models.Modifier]]:
        return {key: list(mods) for key, mods in self._mods.items()}


def aggregate(
    items: Iterable[models.ItemModel],
    active_effect_defs: Mapping[str, list[models.ModifierDef]],
    effects: Iterable[models.ActiveEffect],
    actor_props: Mapping[str, Any],
    *,
    evaluator: Evaluator = evaluate,
) -> dict[str, list[models.Modifier]]:
    """Group the modifiers of equipped items and active effects by target key.

    Item modifiers are computed against the item's own props. Effect modifiers
    are computed against the actor's raw props; an effect only contributes if
    the actor's effect table has an entry for its status ID. Item modifiers
    come first.
    """
    aggregator = Aggregator(evaluator)
    for item in items:
        if not item.equipped:
            continue
        for modifier in item.modifiers:
            aggregator.add_mod(modifier, item.props, source=item.id)
    for effect in effects:
        for modifier in active_effect_defs.get(effect.status_id, ()):
            aggregator.add_mod(modifier, actor_props, source=effect.status_id)
    groups = aggregator.groups
    logger.debug(
        "Aggregated modifiers",
        keys=sorted(groups),
        count=sum(len(mods) for mods in groups.values()),
    )
    return groups
