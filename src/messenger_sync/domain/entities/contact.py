from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Contact:
    """A messenger user found through contact search."""

    id: int | str
    name: str = ""
    # Set when the contact was resolved from an address-book entry.
    saved_id: int | None = None


@dataclass(frozen=True, slots=True)
class AddressBookContact:
    id: int
    name: str = ""
