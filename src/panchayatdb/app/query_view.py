from __future__ import annotations

import locale
import math
from dataclasses import dataclass
from typing import Callable, Iterable, Sequence, Union

from panchayatdb.app.registry_models import CitizenRecord, VillageRecord


PAGE_SIZE = 10
MAX_VISIBLE_PAGES = 5
ELLIPSIS = "ellipsis"

SEARCH_BY_NAME = "name"
SEARCH_BY_AADHAR = "aadhar"
SEARCH_MODES: tuple[str, ...] = (SEARCH_BY_NAME, SEARCH_BY_AADHAR)

SORT_BY_NAME = "name"
SORT_BY_AADHAR = "aadhar_number"
SORT_BY_AGE = "age"
SORT_FIELDS: tuple[str, ...] = (SORT_BY_NAME, SORT_BY_AADHAR, SORT_BY_AGE)

PageToken = Union[int, str]


@dataclass(frozen=True, slots=True)
class FilterSpec:
    term: str = ""
    mode: str = SEARCH_BY_NAME
    village_id: int | None = None


@dataclass(frozen=True, slots=True)
class SortSpec:
    field: str = SORT_BY_NAME
    descending: bool = False

    def toggled(self, field: str) -> SortSpec:
        if field == self.field:
            return SortSpec(field=field, descending=not self.descending)
        return SortSpec(field=field, descending=False)


@dataclass(frozen=True, slots=True)
class QueryResult:
    rows: tuple[CitizenRecord, ...]
    total_count: int
    page_count: int
    page: int


@dataclass(frozen=True, slots=True)
class RegistrySummary:
    village_count: int
    citizen_count: int
    average_age: int


def name_sort_key(value: str) -> tuple[str, str]:
    """Collates by the process LC_COLLATE, set by QApplication; codepoint order without it."""
    folded = value.casefold()
    try:
        collated = locale.strxfrm(folded)
    except (OSError, ValueError):
        collated = folded
    return collated, value


def _sort_key(field: str) -> Callable[[CitizenRecord], object]:
    if field == SORT_BY_NAME:
        return lambda record: name_sort_key(record.name)
    if field == SORT_BY_AADHAR:
        return lambda record: record.aadhar_number
    if field == SORT_BY_AGE:
        return lambda record: record.age
    raise ValueError(f"Unsupported sort field: {field}")


def filter_citizens(citizens: Iterable[CitizenRecord], spec: FilterSpec) -> list[CitizenRecord]:
    term = spec.term
    folded_term = term.casefold()
    filtered: list[CitizenRecord] = []
    for record in citizens:
        if spec.village_id is not None and record.village_id != spec.village_id:
            continue
        if term:
            if spec.mode == SEARCH_BY_AADHAR:
                if term not in record.aadhar_number:
                    continue
            elif folded_term not in record.name.casefold():
                continue
        filtered.append(record)
    return filtered


def sort_citizens(citizens: Sequence[CitizenRecord], spec: SortSpec) -> list[CitizenRecord]:
    # sorted() is stable in both directions, so ties keep their incoming order.
    return sorted(citizens, key=_sort_key(spec.field), reverse=spec.descending)


def page_count_for(total: int, page_size: int = PAGE_SIZE) -> int:
    if total <= 0:
        return 0
    return math.ceil(total / page_size)


def clamp_page(page: int, page_count: int) -> int:
    if page_count <= 0:
        return 1
    return min(max(1, int(page)), page_count)


def run_query(
    snapshot: Iterable[CitizenRecord],
    filter_spec: FilterSpec,
    sort_spec: SortSpec,
    page: int,
    *,
    page_size: int = PAGE_SIZE,
) -> QueryResult:
    ordered = sort_citizens(filter_citizens(snapshot, filter_spec), sort_spec)
    total = len(ordered)
    pages = page_count_for(total, page_size)
    current = clamp_page(page, pages)
    start = (current - 1) * page_size
    return QueryResult(
        rows=tuple(ordered[start : start + page_size]),
        total_count=total,
        page_count=pages,
        page=current,
    )


def page_window(total_pages: int, current_page: int) -> list[PageToken]:
    """Page numbers for the pager, with ``ELLIPSIS`` marking skipped runs."""
    if total_pages <= MAX_VISIBLE_PAGES:
        return list(range(1, total_pages + 1))
    if current_page <= 3:
        return [1, 2, 3, 4, ELLIPSIS, total_pages]
    if current_page >= total_pages - 2:
        return [1, ELLIPSIS, *range(total_pages - 3, total_pages + 1)]
    return [1, ELLIPSIS, current_page - 1, current_page, current_page + 1, ELLIPSIS, total_pages]


def sort_villages(villages: Iterable[VillageRecord]) -> list[VillageRecord]:
    return sorted(villages, key=lambda record: name_sort_key(record.name))


def summarize(villages: Sequence[VillageRecord], citizens: Sequence[CitizenRecord]) -> RegistrySummary:
    average_age = 0
    if citizens:
        # Half-up, not banker's rounding.
        average_age = math.floor(sum(record.age for record in citizens) / len(citizens) + 0.5)
    return RegistrySummary(
        village_count=len(villages),
        citizen_count=len(citizens),
        average_age=average_age,
    )
