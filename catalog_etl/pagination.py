"""Page cursors and the terminal-page checks of the search APIs."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Protocol

from pydantic import BaseModel, Field, ValidationError


class PaginationError(ValueError):
    """Raised when a page carries no readable pagination metadata."""


@dataclass
class PageCursor:
    """Position of a category's fetch loop. Pages are 1-based."""

    category: Enum
    page: int = 1
    page_size: int = 40

    def advance(self) -> None:
        self.page += 1


class Pagination(Protocol):
    """Decides whether a decoded page body is the category's last page."""

    def terminal(self, body: Dict[str, Any]) -> bool:
        ...


class _FlagInfo(BaseModel):
    is_last_page: bool = Field(alias="isLastPage")


class _CounterInfo(BaseModel):
    current_page: int = Field(alias="currentPage")
    page_count: int = Field(alias="pageCount")


def _metadata(body: Dict[str, Any], key: str) -> Any:
    if not isinstance(body, dict) or key not in body:
        raise PaginationError(f"page body has no {key!r} section")
    return body[key]


@dataclass(frozen=True)
class FlagPagination:
    """The response states explicitly whether it is the last page."""

    key: str = "pagingInfo"

    def terminal(self, body: Dict[str, Any]) -> bool:
        try:
            info = _FlagInfo.model_validate(_metadata(body, self.key))
        except ValidationError as exc:
            raise PaginationError(f"invalid {self.key!r}: {exc}") from exc
        return info.is_last_page


@dataclass(frozen=True)
class CounterPagination:
    """The response carries ``currentPage``/``pageCount``; last when current >= count."""

    key: str = "paging"

    def terminal(self, body: Dict[str, Any]) -> bool:
        try:
            info = _CounterInfo.model_validate(_metadata(body, self.key))
        except ValidationError as exc:
            raise PaginationError(f"invalid {self.key!r}: {exc}") from exc
        return info.current_page >= info.page_count
