"""Validation prepass over flat rows.

Reports problems that do not stop a load: empty fields, duplicate
(path, note) pairs and notes spanning several lines. Rows with the wrong
number of fields are reported too; the loader itself rejects them.
"""

from typing import Dict, Iterable, List, Sequence, Tuple

from microfiche.models.schema import FicheSchema, ValidationWarning, WarningKind


def find_row_warnings(
    rows: Iterable[Tuple[int, Sequence[str]]], schema: FicheSchema
) -> List[ValidationWarning]:
    """Collect warnings for numbered rows.

    Args:
        rows: ``(line, fields)`` pairs, fields in the schema's column order.
        schema: Schema the rows are expected to follow.

    Returns:
        Warnings in row order.
    """
    columns = schema.columns
    warnings: List[ValidationWarning] = []
    first_seen: Dict[Tuple[str, ...], int] = {}

    for line, fields in rows:
        if len(fields) != len(columns):
            warnings.append(ValidationWarning(
                line=line,
                kind=WarningKind.MALFORMED_ROW,
                message=f"Expected {len(columns)} fields, found {len(fields)}",
            ))
            continue

        empty = [name for name, value in zip(columns, fields) if not value.strip()]
        if empty:
            warnings.append(ValidationWarning(
                line=line,
                kind=WarningKind.EMPTY_FIELD,
                message=f"Empty field(s): {', '.join(empty)}",
            ))

        key = tuple(fields)
        if key in first_seen:
            warnings.append(ValidationWarning(
                line=line,
                kind=WarningKind.DUPLICATE,
                message=f"Duplicate entry (first seen on line {first_seen[key]})",
            ))
        else:
            first_seen[key] = line

        note = fields[-1]
        if "\n" in note or "\r" in note:
            warnings.append(ValidationWarning(
                line=line,
                kind=WarningKind.EMBEDDED_NEWLINE,
                message="Note contains a line break",
            ))

    return warnings
