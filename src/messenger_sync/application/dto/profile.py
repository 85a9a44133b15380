from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Profile:
    """The account whose messenger roster is being synchronized."""

    id: int
    is_business: bool = False
    business_slug: str | None = None
