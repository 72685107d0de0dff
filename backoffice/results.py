"""Discriminated outcomes returned by the order lifecycle operations."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from pydantic import ValidationError


@dataclass(frozen=True)
class Ok:
    entity: Optional[Any] = None
    warnings: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Failure:
    @property
    def ok(self) -> bool:
        return False


@dataclass(frozen=True)
class ValidationFailed(Failure):
    field_errors: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class NotFound(Failure):
    detail: str = ""


@dataclass(frozen=True)
class InsufficientStock(Failure):
    available: int = 0
    requested: int = 0
    product_id: str = ""


@dataclass(frozen=True)
class Conflict(Failure):
    detail: str = ""


@dataclass(frozen=True)
class TransientFailure(Failure):
    cause: str = ""


OperationResult = Ok | ValidationFailed | NotFound | InsufficientStock | Conflict | TransientFailure


def field_errors_from(e: ValidationError) -> Dict[str, str]:
    return {".".join(str(p) for p in err["loc"]) or "__all__": err["msg"] for err in e.errors()}
