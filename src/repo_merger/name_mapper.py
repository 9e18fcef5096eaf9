"""
Mapping of source ref names to destination ref names.

Branches are joined with a hyphen, tags with a slash, so a branch and a tag
sharing a base name never end up under the same destination name.
"""

from __future__ import annotations

import re

from .models import RefKind, ValidationError


SOURCE_ID_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")
BRANCH_SEPARATOR = "-"
TAG_SEPARATOR = "/"

_FORBIDDEN_CHARS = set(" ~^:?*[\\")


def validate_source_id(source_id: str) -> str:
    """Return ``source_id`` unchanged or raise ValidationError."""
    if not source_id or not SOURCE_ID_PATTERN.match(source_id):
        raise ValidationError(
            f"Invalid source name {source_id!r}. Use only alphanumeric characters, "
            "dots, hyphens, and underscores (must start with an alphanumeric character)."
        )
    return source_id


def is_valid_ref_name(name: str) -> bool:
    """Pure-Python equivalent of ``git check-ref-format --allow-onelevel``."""
    if not name or name == "@":
        return False
    if name.startswith("/") or name.endswith("/") or "//" in name:
        return False
    if name.endswith(".") or ".." in name or "@{" in name:
        return False
    for ch in name:
        if ord(ch) < 0o40 or ord(ch) == 0o177 or ch in _FORBIDDEN_CHARS:
            return False
    for component in name.split("/"):
        if component.startswith(".") or component.endswith(".lock"):
            return False
    return True


def branch_name(source_id: str, remote_name: str) -> str:
    return f"{source_id}{BRANCH_SEPARATOR}{remote_name}"


def tag_name(source_id: str, remote_name: str) -> str:
    return f"{source_id}{TAG_SEPARATOR}{remote_name}"


def destination_name(source_id: str, remote_name: str, kind: RefKind) -> str:
    """Compute the destination ref name for a remote branch or tag.

    Raises:
        ValidationError: if the derived name is not a well-formed ref name.
    """
    if not remote_name:
        raise ValidationError(f"Empty {kind.value} name from source repository")
    if kind == RefKind.BRANCH:
        name = branch_name(source_id, remote_name)
    else:
        name = tag_name(source_id, remote_name)
    if not is_valid_ref_name(name):
        raise ValidationError(f"Derived {kind.value} name {name!r} is not a valid ref name")
    return name
