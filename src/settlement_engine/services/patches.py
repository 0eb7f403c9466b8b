"""Explicit patch structs: one field per allowed mutation."""

from __future__ import annotations

from dataclasses import fields
from typing import Any


class _Unset:
    def __repr__(self) -> str:
        return "UNSET"


# Marks a patch field the caller did not set (distinct from an explicit None)
UNSET: Any = _Unset()


class Patch:
    """Base for frozen dataclass patches whose fields default to UNSET."""

    def changes(self) -> dict[str, Any]:
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if getattr(self, f.name) is not UNSET
        }
