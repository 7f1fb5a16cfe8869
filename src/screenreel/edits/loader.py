from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from screenreel.edits.schema import ExportOptions
from screenreel.errors import ExportIoError, InvalidConfigError


def _validation_detail(e: ValidationError) -> str:
    field_errors = "; ".join(
        f"{' -> '.join(str(x) for x in err['loc'])}: {err['msg']}"
        for err in e.errors()
    )
    return f"Schema validation failed: {field_errors}"


def build_options(path: Optional[Path] = None, **fields) -> ExportOptions:
    """Validate ExportOptions from keyword *fields* (``None`` values ignored).

    *path* only labels the error. Raises InvalidConfigError on schema failures.
    """
    try:
        return ExportOptions.model_validate({k: v for k, v in fields.items() if v is not None})
    except ValidationError as e:
        raise InvalidConfigError(_validation_detail(e), path) from e


def load_options(path: Path, **overrides) -> ExportOptions:
    """Load and validate an ExportOptions JSON file.

    Keyword *overrides* (field names, ``None`` values ignored) replace values
    from the file before validation. Raises InvalidConfigError on schema
    failures and ExportIoError when the file cannot be read.
    """
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise ExportIoError(path, str(e)) from e

    try:
        options = ExportOptions.model_validate_json(text)
    except ValidationError as e:
        raise InvalidConfigError(_validation_detail(e), path) from e

    if any(v is not None for v in overrides.values()):
        data = options.model_dump()
        data.update({k: v for k, v in overrides.items() if v is not None})
        options = build_options(path, **data)
    return options
