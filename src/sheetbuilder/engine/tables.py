"""Row and column editing for dynamic tables.

Rows are never physically removed: deleting a row flags it `deleted` so that
row IDs stay stable for undo and history. Row IDs are therefore never reused.
"""

from __future__ import annotations

from typing import Any
from typing import Iterable
from typing import MutableMapping

from pydantic import TypeAdapter

from . import models
from . import utils
from .errors import DuplicateKeyError
from .errors import SheetEngineError

_COMPONENT = TypeAdapter(models.Component)


def _rows(props: MutableMapping[str, Any], table_key: str) -> MutableMapping[str, Any]:
    rows = utils.get_path(props, table_key, None)
    if rows is None:
        rows = {}
        utils.set_path(props, table_key, rows)
    if not isinstance(rows, MutableMapping):
        raise SheetEngineError(
            f"Property {table_key} is not a dynamic table", details={"value": rows}
        )
    return rows


def _row(props: MutableMapping[str, Any], table_key: str, row_id: str) -> MutableMapping:
    rows = _rows(props, table_key)
    if not isinstance(row := rows.get(row_id), MutableMapping):
        raise SheetEngineError(
            f"Row {row_id} not found in table {table_key}",
            details={"table": table_key, "row": row_id},
        )
    return row


def add_row(
    props: MutableMapping[str, Any],
    table_key: str,
    row: dict[str, Any] | None = None,
) -> str:
    """Append a row to a dynamic table and return its ID."""
    rows = _rows(props, table_key)
    numeric_ids = [int(r) for r in rows if str(r).isdigit()]
    row_id = str(max(numeric_ids, default=-1) + 1)
    rows[row_id] = {**(row or {}), "deleted": False}
    return row_id


def delete_row(props: MutableMapping[str, Any], table_key: str, row_id: str) -> None:
    _row(props, table_key, row_id)["deleted"] = True


def swap_rows(
    props: MutableMapping[str, Any], table_key: str, first: str, second: str
) -> None:
    """Swap the contents of two rows, which changes their display order."""
    rows = _rows(props, table_key)
    first_row = _row(props, table_key, first)
    second_row = _row(props, table_key, second)
    rows[first], rows[second] = second_row, first_row


def add_columns(
    table: models.DynamicTable,
    components: models.Component | dict | Iterable[models.Component | dict],
) -> models.DynamicTable:
    """Return a copy of the table with new columns appended to its row layout.

    Raises:
        DuplicateKeyError: A column key is already used by the table, or appears
            twice among the new columns. The table is left unchanged.
    """
    if isinstance(components, (dict, models.BaseComponent)):
        components = [components]
    new_columns = [
        c if isinstance(c, models.BaseComponent) else _COMPONENT.validate_python(c)
        for c in components
    ]

    taken = {c.key for c in table.row_layout if c.key}
    for column in new_columns:
        if column.key in taken:
            raise DuplicateKeyError(
                "Component keys should be unique in the component's columns.",
                details={"table": table.key, "key": column.key},
            )
        if column.key:
            taken.add(column.key)

    return table.model_copy(update={"row_layout": [*table.row_layout, *new_columns]})
