"""Fixed-point resolution of computable properties.

Formulas may reference each other in any order, so resolution runs in passes.
Every pass tries each property that isn't resolved yet against the values
known so far. A property whose formula references something missing is
deferred to the next pass. Resolution stops when everything is resolved, or
when a whole pass resolves nothing new; whatever is left at that point can't
be computed (a missing property or a circular reference) and is reported.
"""

from __future__ import annotations

import dataclasses
from copy import deepcopy
from typing import Any
from typing import Mapping

from . import models
from . import utils
from .aggregator import apply_modifiers
from .errors import UncomputableError
from .formulas import Evaluator
from .formulas import evaluate
from .logging import get_logger
from .schema import Schema
from .schema import is_table_field
from .schema import split_table_field

logger = get_logger(__name__)


@dataclasses.dataclass
class Resolution:
    """
    Attributes:
        props: Raw props with every computable property overwritten by its value.
        unresolved: Keys that could not be computed, with their formulas.
        passes: Number of passes performed.
    """

    props: models.Props
    unresolved: dict[str, models.Formula]
    passes: int = 0

    @property
    def complete(self) -> bool:
        return not self.unresolved


def strip_computed(schema: Schema, raw_props: Mapping[str, Any]) -> models.Props:
    """Copy the raw props without the slots of computed properties.

    Computed values saved with the actor from a previous pass must not be read
    back as if they were user input. Bar keys are kept: a bar reads its current
    value from the prop with its key, which is user input.
    """
    props = deepcopy(dict(raw_props))
    for key in schema.computable:
        if is_table_field(key):
            table_key, field_key = split_table_field(key)
            for _, row in utils.live_rows(props, table_key):
                row.pop(field_key, None)
        else:
            utils.delete_path(props, key)
    return utils.remove_undefined(props)


def resolve(
    schema: Schema,
    modifiers: Mapping[str, list[models.Modifier]],
    raw_props: Mapping[str, Any],
    *,
    evaluator: Evaluator = evaluate,
) -> Resolution:
    """Compute every computable property of a schema.

    Args:
        schema: The actor's schema.
        modifiers: Modifier groups by target key, as built by `aggregator.aggregate`.
            Only applied to properties outside of dynamic tables.
        raw_props: The actor's stored props. Not modified.
        evaluator: Formula evaluator.

    Raises:
        FormulaError: A formula failed for a reason other than a missing reference.
        ModifierError: A modifier could not be applied.
    """
    props = strip_computed(schema, raw_props)
    pending: dict[str, models.Formula] = dict(schema.computable)
    passes = 0

    while pending:
        passes += 1
        resolved_this_pass: list[str] = []
        for key, formula in list(pending.items()):
            try:
                values = _compute(key, formula, props, modifiers, evaluator)
            except UncomputableError as exc:
                logger.debug(
                    "Deferring prop to next pass",
                    prop=key,
                    formula=formula,
                    missing=exc.reference,
                )
                continue
            utils.merge(props, values)
            del pending[key]
            resolved_this_pass.append(key)
            logger.debug("Computed prop", prop=key)

        logger.info(
            "Computed props",
            pass_number=passes,
            computed=len(resolved_this_pass),
            remaining=len(pending),
        )
        if not resolved_this_pass:
            break

    if pending:
        logger.warning("Some props were not computed", uncomputed=pending)
    return Resolution(props=props, unresolved=pending, passes=passes)


def _compute(
    key: str,
    formula: models.Formula,
    props: models.Props,
    modifiers: Mapping[str, list[models.Modifier]],
    evaluator: Evaluator,
) -> models.Props:
    """Compute one schema key. Returns the values to merge into the props.

    A dynamic table field yields one value per live row; if any row can't be
    computed yet, the whole field is deferred.
    """
    values: models.Props = {}
    if is_table_field(key):
        table_key, field_key = split_table_field(key)
        for row_id, _ in utils.live_rows(props, table_key):
            reference = f"{table_key}.{row_id}"
            utils.set_path(
                values,
                f"{reference}.{field_key}",
                evaluator(formula, props, reference=reference),
            )
    else:
        value = evaluator(formula, props)
        if key_mods := modifiers.get(key):
            value = apply_modifiers(value, key_mods)
        utils.set_path(values, key, value)
    return values
