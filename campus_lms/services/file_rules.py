from collections.abc import Mapping
from pathlib import PurePosixPath
from typing import Any, Iterable

from campus_lms.core.errors import ValidationError

BYTES_PER_MB = 1024 * 1024


def extension_of(filename: str) -> str:
    return PurePosixPath(filename or "").suffix.lower().lstrip(".")


def normalize_file_types(file_types: Iterable[str] | None) -> list[str]:
    return [t.strip().lower().lstrip(".") for t in file_types or [] if t and t.strip()]


def validate_file(name: str, size: int | None, requirements: Any) -> None:
    """Check one file against the assignment's size limit and allowed extensions.

    A file without a known size is refused, since the limit cannot be checked.
    """
    max_mb = requirements.max_file_size_mb
    if size is None:
        raise ValidationError(f"File {name} has no size", file=name)
    if size > max_mb * BYTES_PER_MB:
        raise ValidationError(f"File {name} exceeds the maximum size of {max_mb} MB", file=name)

    allowed = normalize_file_types(requirements.allowed_file_types)
    if allowed and extension_of(name) not in allowed:
        raise ValidationError(
            f"File type of {name} is not allowed (allowed: {', '.join(allowed)})",
            file=name,
        )


def validate_files(files: Iterable[Any], requirements: Any) -> None:
    for f in files:
        if isinstance(f, Mapping):
            validate_file(f.get("name"), f.get("size"), requirements)
        else:
            validate_file(f.name, f.size, requirements)
