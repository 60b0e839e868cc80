from __future__ import annotations

import re
from typing import Any
from typing import Mapping

from . import models
from . import utils
from .config import get_settings
from .errors import BarInputError
from .formulas import Evaluator
from .formulas import evaluate
from .schema import is_table_field

_ADJUSTMENT = re.compile(
    r"""\s*(?P<op>[=+-])?        # "=" sets, "+" and "-" are relative
    \s*(?P<amount>\d+(?:\.\d+)?)\s*
    """,
    re.VERBOSE,
)


def resolve_bars(
    bar_schema: Mapping[str, models.AttributeBarDef],
    props: Mapping[str, Any],
    *,
    evaluator: Evaluator = evaluate,
) -> dict[str, models.AttributeBar]:
    """Compute the current value and maximum of every attribute bar.

    Bars can not be defined inside dynamic tables, so table fields are skipped.

    A bar's maximum is used as-is when it is already a number and evaluated as
    a formula otherwise. Its value is the explicit `value` of the definition if
    there is one, else the prop with the bar's key; when that isn't a number it
    is evaluated as a formula too. Either formula falls back to the configured
    default bar value when it references something that doesn't exist.
    """
    default = utils.as_number(get_settings().default_bar_value)
    bars: dict[str, models.AttributeBar] = {}
    for key, definition in bar_schema.items():
        if is_table_field(key):
            continue
        maximum = _number_or_formula(definition.max, props, default, evaluator)

        value = definition.value
        if value is None:
            value = utils.get_path(props, key, None)
        value = _number_or_formula(value, props, default, evaluator)

        bars[key] = models.AttributeBar(key=key, value=value, max=maximum)
    return bars


def _number_or_formula(
    raw: Any, props: Mapping[str, Any], default: Any, evaluator: Evaluator
) -> Any:
    if (number := utils.as_number(raw)) is not None:
        return number
    if raw is None or raw == "":
        raw = "0"
    return evaluator(raw, props, default_value=default)


def adjust_bar_value(
    current: Any,
    text: str,
    *,
    maximum: Any = None,
    clamp: bool = False,
) -> int | float:
    """Apply a token HUD style adjustment to a bar's current value.

    `"=5"` and `"5"` set the value, `"+3"` and `"-2"` are relative to it.
    Relative changes are capped at `maximum` when `clamp` is set (bar displays);
    plain value displays are not capped.

    Raises:
        BarInputError: The text isn't a valid adjustment.
    """
    if not (match := _ADJUSTMENT.fullmatch(text or "")):
        raise BarInputError(f"Invalid bar adjustment {text!r}", details={"text": text})
    amount = utils.as_number(match.group("amount"))
    op = match.group("op")
    if op not in ("+", "-"):
        return amount

    base = utils.as_number(current) or 0
    value = base + amount if op == "+" else base - amount
    if clamp and (cap := utils.as_number(maximum)) is not None:
        value = min(value, cap)
    return utils.as_number(value)
