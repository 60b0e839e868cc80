"""Exception hierarchy for the sheet engine.

Every engine error derives from SheetEngineError and carries an optional
`details` dict, so callers at the application boundary can catch one type and
still report structured context.

Only UncomputableError is recovered inside the engine (the property resolver
defers the property to the next pass). Everything else propagates.
"""

from __future__ import annotations

from typing import Any


class SheetEngineError(Exception):
    """Base exception for all sheet engine errors.

    Attributes:
        message: Human-readable error description.
        details: Additional error context.
    """

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        if self.details:
            detail_str = ", ".join(f"{k}={v!r}" for k, v in self.details.items())
            return f"{self.message} [{detail_str}]"
        return self.message

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(message={self.message!r}, details={self.details!r})"


class ConfigurationError(SheetEngineError):
    """Raised for invalid settings or unknown configuration values."""


# =============================================================================
# Formula evaluation
# =============================================================================


class FormulaError(SheetEngineError):
    """Raised when a formula can not be evaluated for a reason other than a missing reference.

    Syntax errors, dice errors and non-numeric values used in arithmetic all
    end up here. These are always fatal to a resolution pass.
    """

    def __init__(
        self,
        message: str,
        *,
        formula: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        combined_details = details or {}
        if formula is not None:
            combined_details["formula"] = formula
        super().__init__(message, details=combined_details)


class UncomputableError(FormulaError):
    """Raised when a formula references a property that is not in the context (yet).

    Attributes:
        reference: The property reference that could not be found.
    """

    def __init__(
        self,
        reference: str,
        *,
        formula: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.reference = reference
        combined_details = details or {}
        combined_details["reference"] = reference
        super().__init__(
            f"Uncomputable reference {reference}",
            formula=formula,
            details=combined_details,
        )


class ModifierError(SheetEngineError):
    """Raised when a modifier can not be applied to a value."""


# =============================================================================
# Rolls, bars and tables
# =============================================================================


class RollNotFoundError(SheetEngineError):
    """Raised when a roll key has no formula, or its row filter matches nothing."""

    def __init__(self, roll_key: str, *, details: dict[str, Any] | None = None) -> None:
        combined_details = details or {}
        combined_details["roll_key"] = roll_key
        super().__init__("Roll formula not found in character sheet", details=combined_details)


class BarInputError(SheetEngineError):
    """Raised when a bar adjustment can not be parsed."""


class DuplicateKeyError(SheetEngineError):
    """Raised when a dynamic table column key is already in use."""
