"""Data models for avisos."""

import datetime
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from pydantic import BaseModel, Field, field_validator, model_validator

from avisos.config import MILLIS_PER_DAY

RECYCLE_BIN_RETENTION_DAYS = 15


def now_millis() -> int:
    """Current wall-clock time as epoch milliseconds."""
    return time.time_ns() // 1_000_000


def millis_to_datetime(value: int) -> datetime.datetime:
    """Convert epoch milliseconds to a timezone-aware UTC datetime."""
    return datetime.datetime.fromtimestamp(value / 1000, tz=datetime.timezone.utc)


class Category(str, Enum):
    """Fixed set of note categories."""

    TRUCAR = "Trucar"  # Calls to make
    ENCARREGAR = "Encarregar"  # Orders to place
    FACTURES = "Factures"  # Invoices
    NOTES = "Notes"  # General notes
    COMPRA = "Compra"  # Purchase invoices
    VENDA = "Venda"  # Sales invoices


class DeletionType(str, Enum):
    """Why a note was moved to the recycle bin."""

    ESBORRADES = "Esborrades"  # Deleted by the user
    FINALITZADES = "Finalitzades"  # Completed / archived


class CategoryView(str, Enum):
    """What a category opens into when selected."""

    LEAF_LIST = "leaf_list"
    SUBCATEGORY_SELECTOR = "subcategory_selector"


@dataclass(frozen=True)
class CategoryRoute:
    """Routing entry for one category.

    Attributes:
        category: The category this route belongs to.
        view: Whether the category lists notes directly or asks for a subcategory.
        subcategories: Valid subcategory qualifiers, in display order.
    """

    category: Category
    view: CategoryView
    subcategories: Tuple[str, ...] = ()

    def accepts(self, subcategory: Optional[str]) -> bool:
        """Check whether a subcategory is valid under this route."""
        if subcategory is None:
            return True
        return subcategory in self.subcategories


_INVOICE_STATES = ("Passades", "Per passar")

CATEGORY_ROUTES: Dict[Category, CategoryRoute] = {
    Category.TRUCAR: CategoryRoute(Category.TRUCAR, CategoryView.LEAF_LIST),
    Category.ENCARREGAR: CategoryRoute(Category.ENCARREGAR, CategoryView.LEAF_LIST),
    Category.FACTURES: CategoryRoute(
        Category.FACTURES,
        CategoryView.SUBCATEGORY_SELECTOR,
        _INVOICE_STATES + ("Per pagar", "Per cobrar"),
    ),
    Category.NOTES: CategoryRoute(Category.NOTES, CategoryView.LEAF_LIST),
    Category.COMPRA: CategoryRoute(
        Category.COMPRA, CategoryView.SUBCATEGORY_SELECTOR, _INVOICE_STATES
    ),
    Category.VENDA: CategoryRoute(
        Category.VENDA, CategoryView.SUBCATEGORY_SELECTOR, _INVOICE_STATES
    ),
}


def route_for(category: Category) -> CategoryRoute:
    """Resolve the routing entry for a category."""
    return CATEGORY_ROUTES[Category(category)]


class Note(BaseModel):
    """A categorized note with soft-delete state.

    ``id`` is None until the note has been persisted.
    """

    id: Optional[int] = Field(default=None, description="Store-assigned ID")
    name: str = Field(..., description="Short title of the note")
    body: str = Field(..., description="Note text")
    contact: Optional[str] = Field(default=None, description="Who to contact")
    category: Category = Field(..., description="Category of the note")
    subcategory: Optional[str] = Field(
        default=None, description="Qualifier for categories with subcategories"
    )
    created_date: int = Field(
        default_factory=now_millis, description="Creation time (epoch ms)"
    )
    modified_date: int = Field(
        default_factory=now_millis, description="Last modification time (epoch ms)"
    )
    is_urgent: bool = Field(default=False, description="Sort urgent notes first")
    author: Optional[str] = Field(default=None, description="Creator identity")
    is_deleted: bool = Field(default=False, description="In the recycle bin")
    deleted_date: Optional[int] = Field(
        default=None, description="When the note entered the recycle bin (epoch ms)"
    )
    deletion_type: Optional[DeletionType] = Field(
        default=None, description="Why the note entered the recycle bin"
    )

    model_config = {"extra": "forbid"}

    @field_validator("name", "body")
    @classmethod
    def validate_required_text(cls, v: str) -> str:
        """Trim required text and reject empty values."""
        v = v.strip()
        if not v:
            raise ValueError("cannot be empty")
        return v

    @field_validator("contact")
    @classmethod
    def normalize_contact(cls, v: Optional[str]) -> Optional[str]:
        """Store blank contacts as None."""
        if v is None:
            return None
        v = v.strip()
        return v or None

    @model_validator(mode="after")
    def _check_state(self) -> "Note":
        if not route_for(self.category).accepts(self.subcategory):
            raise ValueError(
                f"Subcategory '{self.subcategory}' is not valid for "
                f"category '{self.category.value}'"
            )
        flags = (
            self.is_deleted,
            self.deleted_date is not None,
            self.deletion_type is not None,
        )
        if any(flags) and not all(flags):
            raise ValueError(
                "is_deleted, deleted_date and deletion_type must be set together"
            )
        return self

    def expires_at(self, retention_days: int = RECYCLE_BIN_RETENTION_DAYS) -> Optional[int]:
        """Epoch ms after which the sweep purges this note, or None if active."""
        if self.deleted_date is None:
            return None
        return self.deleted_date + retention_days * MILLIS_PER_DAY


class EditHistoryEntry(BaseModel):
    """One field-level change recorded for a note."""

    id: Optional[int] = Field(default=None, description="Insertion-ordered ID")
    note_id: int = Field(..., description="ID of the edited note")
    field_name: str = Field(..., description="Logical name of the changed field")
    old_value: Optional[str] = Field(default=None)
    new_value: Optional[str] = Field(default=None)
    timestamp: int = Field(..., description="Edit time (epoch ms)")
    modified_by: Optional[str] = Field(default=None, description="Editor identity")
    edition_number: int = Field(default=0, ge=0, description="Save-group number")

    model_config = {"extra": "forbid", "frozen": True}


class EditionSummary(BaseModel):
    """One row per edition of a note."""

    note_id: int
    edition_number: int
    timestamp: int = Field(..., description="Earliest timestamp in the edition")
    modified_by: Optional[str] = None
    change_count: int = 0

    model_config = {"frozen": True}


@dataclass
class SaveResult:
    """Outcome of a versioned save.

    Attributes:
        note: The persisted note.
        edition_number: Edition assigned to the recorded changes, or None when
            the save created the note or changed nothing.
        changes: History entries written by this save.
        created: True when the save inserted a new note.
    """

    note: Note
    edition_number: Optional[int]
    changes: Tuple[EditHistoryEntry, ...] = ()
    created: bool = False

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "note": self.note.model_dump(mode="json"),
            "edition_number": self.edition_number,
            "changes": [c.model_dump(mode="json") for c in self.changes],
        }
