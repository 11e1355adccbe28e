from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from .category import Category

"""Row-level domain models for attendance import.

ImportRow is the generic string map decoded from the source file. After
resolution it becomes a ResolvedRecord, and after categorization an
InsertRecord carrying the fixed payload for its category.

Row numbers are 1-based and account for the header line, so the first data
row is row 2.
"""

__all__ = [
    "FIRST_DATA_ROW",
    "ImportRow",
    "GuestRecord",
    "GuestRegistry",
    "SpecialCode",
    "DEFAULT_SPECIAL_CODES",
    "ResolvedRecord",
    "InsertRecord",
]

FIRST_DATA_ROW = 2


@dataclass(frozen=True)
class ImportRow:
    """One decoded source row (field name -> raw string)."""
    row_number: int
    fields: Mapping[str, str]

    def __post_init__(self) -> None:
        # 呼び出し側の dict を後から変更されても影響しないようコピーして読み取り専用化
        object.__setattr__(self, "fields", MappingProxyType(dict(self.fields)))

    def get(self, name: str) -> str:
        """Trimmed field value, '' when absent."""
        value = self.fields.get(name)
        if value is None:
            return ""
        return str(value).strip()

    @property
    def guest_code(self) -> str:
        return self.get("guest_id")


@dataclass(frozen=True)
class GuestRecord:
    """Guest directory entry. ``id`` is opaque (server uuid or local placeholder)."""
    id: Any
    guest_code: str
    first_name: str = ""
    last_name: str = ""


class GuestRegistry:
    """Read-only snapshot of the guest directory.

    A code matches a guest when it equals the guest's external code or the
    string form of its internal id.
    """

    def __init__(self, guests: Iterable[GuestRecord] = ()) -> None:
        self._guests: tuple[GuestRecord, ...] = tuple(guests)
        self._by_code: dict[str, GuestRecord] = {}
        self._by_id: dict[str, GuestRecord] = {}
        for g in self._guests:
            if g.guest_code:
                self._by_code.setdefault(g.guest_code, g)
            if g.id is not None:
                self._by_id.setdefault(str(g.id), g)

    @classmethod
    def from_rows(cls, rows: Iterable[Mapping[str, Any]]) -> GuestRegistry:
        """Build from dict rows using id / guest_id / first_name / last_name keys."""
        guests = []
        for r in rows:
            guests.append(
                GuestRecord(
                    id=r.get("id"),
                    guest_code=str(r.get("guest_id") or r.get("external_id") or "").strip(),
                    first_name=str(r.get("first_name") or "").strip(),
                    last_name=str(r.get("last_name") or "").strip(),
                )
            )
        return cls(guests)

    def lookup(self, code: str) -> GuestRecord | None:
        if not code:
            return None
        return self._by_code.get(code) or self._by_id.get(code)

    def __len__(self) -> int:
        return len(self._guests)

    def __contains__(self, code: object) -> bool:
        return isinstance(code, str) and self.lookup(code) is not None


@dataclass(frozen=True)
class SpecialCode:
    """Synthetic guest code that maps directly to a meal type."""
    code: str
    meal_type: str
    label: str


DEFAULT_SPECIAL_CODES: Mapping[str, SpecialCode] = MappingProxyType(
    {
        "M91834859": SpecialCode("M91834859", "extra", "Extra meals"),
        "M94816825": SpecialCode("M94816825", "rv", "RV meals"),
        "M47721243": SpecialCode("M47721243", "lunch_bag", "Lunch bags"),
        "M29017132": SpecialCode("M29017132", "day_worker", "Day Worker Center meals"),
        "M61706731": SpecialCode("M61706731", "shelter", "Shelter meals"),
    }
)


@dataclass(frozen=True)
class ResolvedRecord:
    """ImportRow bound to exactly one of: a real guest id, or a special code."""
    row: ImportRow
    guest_id: Any = None
    special: SpecialCode | None = None
    guest: GuestRecord | None = field(default=None, compare=False)

    def __post_init__(self) -> None:
        if (self.guest_id is None) == (self.special is None):
            raise ValueError(
                f"row {self.row.row_number}: record must carry either a guest id or a special code"
            )

    @property
    def row_number(self) -> int:
        return self.row.row_number

    @property
    def guest_code(self) -> str:
        return self.row.guest_code

    @property
    def is_special(self) -> bool:
        return self.special is not None


@dataclass(frozen=True)
class InsertRecord:
    """Fixed-schema payload for one category, ready for the store."""
    category: Category
    row_number: int
    values: Mapping[str, Any]
    count: int = 1  # 元データの Count (special meal 集計用)
    label: str | None = None  # special meal ラベル
