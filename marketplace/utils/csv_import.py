from __future__ import annotations

import csv
import io
from typing import List

import pydantic
from werkzeug.datastructures import FileStorage

from ..errors import ValidationError, validation_errors
from ..schemas import CsvProductRow

REQUIRED_COLUMNS = {"name", "price"}


def read_rows(upload: FileStorage | None) -> List[dict]:
    if upload is None or not upload.filename:
        raise ValidationError("No file uploaded")
    if not upload.filename.lower().endswith(".csv"):
        raise ValidationError("Only CSV files are allowed")

    try:
        text = upload.read().decode("utf-8-sig")
    except UnicodeDecodeError:
        raise ValidationError("CSV file must be UTF-8 encoded")

    reader = csv.DictReader(io.StringIO(text))
    columns = {(name or "").strip().lower() for name in (reader.fieldnames or [])}
    missing = REQUIRED_COLUMNS - columns
    if missing:
        raise ValidationError(
            "Invalid CSV format - please check the required fields and data types",
            errors=[{"path": column, "message": "Missing column"} for column in sorted(missing)],
        )

    rows = []
    for raw in reader:
        row = {
            (key or "").strip().lower(): (value or "").strip()
            for key, value in raw.items()
            if key is not None and not isinstance(value, list)
        }
        if not any(row.values()):
            continue
        rows.append(row)
    if not rows:
        raise ValidationError("CSV file is empty or invalid")
    return rows


def validate_rows(rows: List[dict]) -> List[dict]:
    products = []
    errors = []
    for index, row in enumerate(rows):
        try:
            products.append(CsvProductRow.model_validate(row).model_dump())
        except pydantic.ValidationError as exc:
            errors.extend(validation_errors(exc, prefix=str(index)))
    if errors:
        raise ValidationError(
            "Invalid CSV format - please check the required fields and data types",
            errors=errors,
        )
    return products
