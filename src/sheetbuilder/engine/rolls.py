from __future__ import annotations

import re
from typing import Any
from typing import Mapping

from . import utils
from .errors import RollNotFoundError
from .formulas import ComputedPhrase
from .formulas import compute_phrase
from .logging import get_logger
from .messages import ChatMessage
from .messages import MessageSink
from .messages import Speaker
from .schema import Schema

logger = get_logger(__name__)

_ROW_FILTER = re.compile(
    r"""(?P<parent>[a-zA-Z0-9_]+)    # Dynamic table key, aka "attacks"
    \((?P<column>[a-zA-Z0-9_]+)      # Column to match, aka "(name"
    =(?P<value>.+)\)                 # Value it must have, aka "=Sword)"
    """,
    re.VERBOSE,
)


def custom_rolls(schema: Schema) -> dict[str, dict[str, str]]:
    return {"main": dict(schema.rollable), "alternative": dict(schema.alt_rollable)}


def find_row(props: Mapping[str, Any], parent: str, column: str, value: str) -> str | None:
    """Find the first live row of a dynamic table whose column matches a value.

    Values are compared as text, since filters come from roll keys.
    """
    for row_id, row in utils.live_rows(props, parent):
        cell = row.get(column)
        if cell is not None and str(cell) == value:
            return row_id
    return None


def locate_roll(roll_key: str, props: Mapping[str, Any]) -> tuple[str, str | None]:
    """Resolve a roll key to a schema roll key and a reference scope.

    `"attacks(name=Sword).damage"` becomes `("attacks.damage", "attacks.a1")` if
    row a1 of the attacks table is named Sword. Keys without a filter come back
    unchanged with no reference.

    Raises:
        RollNotFoundError: The filter matches no row.
    """
    first, _, rest = roll_key.partition(".")
    if not (match := _ROW_FILTER.fullmatch(first)):
        return roll_key, None
    parent = match.group("parent")
    row_id = find_row(props, parent, match.group("column"), match.group("value"))
    if row_id is None:
        raise RollNotFoundError(roll_key, details={"filter": first})
    return f"{parent}.{rest}", f"{parent}.{row_id}"


def roll(
    roll_key: str,
    schema: Schema,
    props: Mapping[str, Any],
    *,
    alternative: bool = False,
    post_message: bool = True,
    sink: MessageSink | None = None,
    speaker: Speaker | None = None,
) -> ComputedPhrase:
    """Evaluate a roll defined by the template.

    Args:
        roll_key: Key of the component holding the roll, optionally with a row
            filter on its first segment: `attacks(name=Sword).damage`.
        schema: The actor's schema.
        props: The actor's resolved props.
        alternative: Use the alternative roll formula instead of the main one.
        post_message: Post the result to `sink`.
        sink: Where results are posted.
        speaker: Who the posted message is attributed to.

    Raises:
        RollNotFoundError: No roll formula for the key, or no row matches its filter.
        UncomputableError: The roll references a property that doesn't exist.
        FormulaError: The roll formula is malformed.
    """
    key, reference = locate_roll(roll_key, props)
    rolls = custom_rolls(schema)["alternative" if alternative else "main"]
    if not (formula := rolls.get(key)):
        raise RollNotFoundError(roll_key, details={"alternative": alternative})

    phrase = compute_phrase(formula, props, reference=reference, explain=True)
    logger.info("Rolled", roll_key=roll_key, reference=reference, result=phrase.text)

    if post_message and sink is not None:
        sink.post(
            ChatMessage(
                speaker=speaker or Speaker(),
                content=phrase.text,
                formula=formula,
                explanations=phrase.explanations,
            )
        )
    return phrase
