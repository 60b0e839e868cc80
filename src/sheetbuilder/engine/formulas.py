"""Formula and phrase evaluation.

A formula is an arithmetic expression that may roll dice and reference
properties, e.g. `1d20 + str_mod` or `(level + 1) // 2`. Dice and arithmetic
are handled by the d20 library; this module only resolves property references
before handing the expression over.

References are identifiers, optionally dotted to reach into nested props
(`attacks.a1.bonus`). When a reference scope is given (a dynamic table row
such as `attacks.a1`), references are looked up in that row first, which lets
per-row formulas address sibling columns unqualified. Tokens that look like
dice (`d20`, `d6kh1`) are left to d20 and are never treated as references.

A phrase is text with embedded `${formula}$` blocks: "Attack: ${1d20 + str}$".
Each block is evaluated and interpolated into the text. A phrase that is
exactly one block evaluates to the block's raw value. Text without any block
is evaluated as a single formula when it reads as one (`str + 2`, `might`);
words that don't form an expression, such as "Strength Score", are kept as
literal text.

Missing references raise UncomputableError, unless a default value is given,
in which case the default is substituted. Every other problem raises
FormulaError.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from dataclasses import field
from functools import lru_cache
from typing import Any
from typing import Mapping
from typing import Protocol

import d20

from . import utils
from .config import get_settings
from .errors import FormulaError
from .errors import UncomputableError

_BLOCK = re.compile(r"\$\{(?P<formula>.*?)\}\$", re.DOTALL)
_REFERENCE = re.compile(
    r"""(?<![\w.])                   # Not the tail of a number, dice or longer name
    (?P<ref>[A-Za-z_][A-Za-z0-9_]*   # First segment, aka "attacks"
    (?:\.[A-Za-z0-9_]+)*)            # Nested segments, row IDs may be numeric: ".0.bonus"
    """,
    re.VERBOSE,
)
_DICE = re.compile(r"d\d+[a-z0-9<>]*")
_NUMBER = re.compile(r"[-+]?\d+(?:\.\d+)?")
_QUOTED = re.compile(r"""(?P<quote>['"])(?P<text>[^'"]*)(?P=quote)""")
_OPERATOR = re.compile(r"[-+*/%=<>()]")


class Evaluator(Protocol):
    """Formula evaluation boundary used by the aggregator and resolvers."""

    def __call__(
        self,
        formula: str | float,
        props: Mapping[str, Any],
        *,
        default_value: Any = None,
        reference: str | None = None,
    ) -> Any:
        ...


@dataclass
class ComputedPhrase:
    """Result of evaluating a formula or phrase.

    Attributes:
        formula: The source formula or phrase.
        result: Computed value. A number for arithmetic, the referenced value for
            a bare reference, or the interpolated text for multi-block phrases.
        text: The result rendered as text.
        explanations: One entry per evaluated dice expression, showing the dice
            rolled. Only populated when requested.
        reference: The reference scope the phrase was computed with.
    """

    formula: str
    result: Any
    text: str
    explanations: list[str] = field(default_factory=list)
    reference: str | None = None

    def __str__(self) -> str:
        return self.text


@dataclass
class _Scope:
    props: Mapping[str, Any]
    formula: str
    reference: str | None = None
    default_value: Any = None

    def lookup(self, ref: str) -> Any:
        if self.reference:
            value = utils.get_path(self.props, f"{self.reference}.{ref}")
            if value is not utils.MISSING and value is not None:
                return value
        value = utils.get_path(self.props, ref)
        if value is utils.MISSING or value is None:
            if self.default_value is not None:
                return self.default_value
            raise UncomputableError(ref, formula=self.formula)
        return value

    def substitute(self, match: re.Match) -> str:
        ref = match.group("ref")
        if _DICE.fullmatch(ref):
            return ref
        value = self.lookup(ref)
        number = utils.as_number(value)
        if number is None:
            raise FormulaError(
                f"Property {ref} is not numeric",
                formula=self.formula,
                details={"value": value},
            )
        return _literal(number)


def _literal(number: int | float) -> str:
    if isinstance(number, float):
        text = format(number, ".10f").rstrip("0").rstrip(".")
    else:
        text = str(number)
    return f"({text})" if number < 0 else text


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


@lru_cache
def _roller() -> d20.Roller:
    return d20.Roller(context=d20.RollContext(max_rolls=get_settings().max_rolls))


def _is_plain_text(text: str) -> bool:
    text = text.strip()
    if not text or _NUMBER.fullmatch(text) or _QUOTED.fullmatch(text):
        return False
    if _REFERENCE.fullmatch(text):
        return False
    skeleton = _REFERENCE.sub(
        lambda m: m.group("ref") if _DICE.fullmatch(m.group("ref")) else "0", text
    )
    try:
        _roller().parse(skeleton)
    except d20.RollError:
        return not _OPERATOR.search(text)
    return False


def _evaluate_expression(expression: str, scope: _Scope, explanations: list[str]) -> Any:
    expression = expression.strip()
    if not expression:
        return ""
    if _NUMBER.fullmatch(expression):
        return utils.as_number(expression)
    if match := _QUOTED.fullmatch(expression):
        return match.group("text")
    if _REFERENCE.fullmatch(expression) and not _DICE.fullmatch(expression):
        return scope.lookup(expression)

    substituted = _REFERENCE.sub(scope.substitute, expression)
    try:
        result = _roller().roll(substituted)
    except d20.RollError as exc:
        raise FormulaError(
            str(exc), formula=scope.formula, details={"expression": substituted}
        ) from exc
    except ZeroDivisionError as exc:
        raise FormulaError(
            "Division by zero", formula=scope.formula, details={"expression": substituted}
        ) from exc
    explanations.append(str(result))
    return utils.as_number(result.expr.total)


def compute_phrase(
    formula: str | float,
    props: Mapping[str, Any],
    *,
    default_value: Any = None,
    reference: str | None = None,
    explain: bool = False,
) -> ComputedPhrase:
    """Evaluate a formula or phrase against a property context.

    Args:
        formula: Formula, phrase, or a literal number.
        props: Property context. Nested mappings are reachable with dotted references.
        default_value: If not None, substituted for any reference that can't be found
            instead of raising UncomputableError.
        reference: Dotted path of a row whose columns are reachable unqualified.
        explain: If True, the returned phrase lists the dice rolled.

    Raises:
        UncomputableError: A reference is missing and no default value was provided.
        FormulaError: The formula is malformed or uses a non-numeric value in arithmetic.
    """
    if not isinstance(formula, str):
        number = utils.as_number(formula)
        return ComputedPhrase(
            formula=_text(formula), result=number, text=_text(number), reference=reference
        )

    scope = _Scope(props, formula, reference=reference, default_value=default_value)
    explanations: list[str] = []
    blocks = list(_BLOCK.finditer(formula))
    if not blocks and _is_plain_text(formula):
        result = text = formula
    elif not blocks:
        result = _evaluate_expression(formula, scope, explanations)
        text = _text(result)
    elif len(blocks) == 1 and blocks[0].group(0) == formula.strip():
        result = _evaluate_expression(blocks[0].group("formula"), scope, explanations)
        text = _text(result)
    else:
        text = _BLOCK.sub(
            lambda m: _text(_evaluate_expression(m.group("formula"), scope, explanations)),
            formula,
        )
        result = text
    return ComputedPhrase(
        formula=formula,
        result=result,
        text=text,
        explanations=explanations if explain else [],
        reference=reference,
    )


def evaluate(
    formula: str | float,
    props: Mapping[str, Any],
    *,
    default_value: Any = None,
    reference: str | None = None,
) -> Any:
    """Evaluate a formula and return only its value. See `compute_phrase`."""
    return compute_phrase(
        formula, props, default_value=default_value, reference=reference
    ).result
