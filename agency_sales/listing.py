"""Search, filter, sort and paginate helpers for tabular dashboard data.

Everything here is pure: functions take a sequence of records (model
instances, dataclasses or plain dicts) plus a description of the view and
return a new page without touching the input or any global state.
"""

import locale
import math
import re
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Mapping, Optional, Sequence

ASC = "asc"
DESC = "desc"
DIRECTIONS = (ASC, DESC)

# Values that mean "no constraint" for a filter.
UNSET_FILTER_VALUES = (None, "", "all")

# Currency-like fields stored or displayed as formatted strings.
NUMERIC_SORT_KEYS = frozenset(
    {
        "comm",
        "commission",
        "totalCommission",
        "averageCommission",
        "soldPrice",
        "sold_price",
        "price",
        "revenue",
        "totalRevenue",
        "total_revenue",
    }
)

# Commission and revenue oriented columns open in descending order.
DEFAULT_DESC_KEYS = frozenset(
    {
        "comm",
        "commission",
        "totalCommission",
        "averageCommission",
        "revenue",
        "totalRevenue",
        "total_revenue",
    }
)

_NON_NUMERIC = re.compile(r"[^0-9.\-]+")


def get_field(item: Any, key: str) -> Any:
    """Read a field from a mapping or an object.

    Args:
        item: A dict-like record or an object with attributes.
        key: Field name.

    Returns:
        The field value, or None if the record has no such field.
    """
    if isinstance(item, Mapping):
        return item.get(key)
    return getattr(item, key, None)


def parse_numeric(value: Any) -> Decimal:
    """Parse a number out of a possibly formatted value.

    Everything except digits, the decimal point and the minus sign is
    stripped first, so "$1,200,000" parses as 1200000.

    Args:
        value: A number or string.

    Returns:
        The parsed Decimal, or Decimal("0") if nothing numeric remains or
        the value is NaN or infinite.
    """
    if value is None or isinstance(value, bool):
        return Decimal("0")
    if isinstance(value, (int, float, Decimal)):
        number = Decimal(str(value))
    else:
        cleaned = _NON_NUMERIC.sub("", str(value))
        try:
            number = Decimal(cleaned) if cleaned else Decimal("0")
        except InvalidOperation:
            return Decimal("0")
    return number if number.is_finite() else Decimal("0")


def default_direction(key: Optional[str], view_default: Optional[str] = None) -> str:
    """Direction a column opens in when first selected.

    Args:
        key: The sort key being selected.
        view_default: Direction the view prefers for every new key.

    Returns:
        "asc" or "desc".
    """
    if view_default in DIRECTIONS:
        return view_default
    return DESC if key in DEFAULT_DESC_KEYS else ASC


@dataclass(frozen=True)
class SortState:
    """Current sort column and direction of a table view.

    Attributes:
        key: Field being sorted on, or None for insertion order.
        direction: "asc" or "desc".
        view_default: Direction new keys open in; None picks per key.
    """

    key: Optional[str] = None
    direction: str = ASC
    view_default: Optional[str] = None

    def toggle(self, key: str) -> "SortState":
        """Select a column the way a header click does.

        Selecting the current key flips the direction; selecting a new key
        resets the direction to the view's default.
        """
        if key == self.key:
            return replace(self, direction=DESC if self.direction == ASC else ASC)
        return replace(self, key=key, direction=default_direction(key, self.view_default))

    def select(
        self,
        key: Optional[str],
        direction: Optional[str] = None,
        allowed: Optional[Iterable[str]] = None,
    ) -> "SortState":
        """Set key and direction explicitly, ignoring invalid values.

        Args:
            key: Requested sort key.
            direction: Requested direction.
            allowed: Valid sort keys; None accepts any key.

        Returns:
            The new state, or this state unchanged if the key is invalid.
        """
        if not key or (allowed is not None and key not in set(allowed)):
            return self
        if direction not in DIRECTIONS:
            direction = default_direction(key, self.view_default)
        return replace(self, key=key, direction=direction)


@dataclass(frozen=True)
class DateRange:
    """Inclusive date window used by period filters."""

    start: Optional[date] = None
    end: Optional[date] = None

    def contains(self, value: Any) -> bool:
        """Check whether a date-like value falls inside the window."""
        value = _coerce_date(value)
        if value is None:
            return False
        if self.start and value < _coerce_date(self.start):
            return False
        if self.end and value > _coerce_date(self.end):
            return False
        return True


@dataclass
class ListQuery:
    """Description of a table view.

    Attributes:
        search: Case-insensitive substring to look for.
        search_fields: Fields the search term is matched against.
        sort: Sort column and direction.
        page: 1-indexed page number.
        page_size: Rows per page.
        filters: Field name to predicate value. Scalars match by equality,
            (low, high) tuples are inclusive ranges, lists/sets match any
            member, and DateRange matches a window.
        numeric_keys: Extra sort keys to compare as formatted numbers.
        tiebreak_key: Field used to order rows with equal sort values.
    """

    search: str = ""
    search_fields: Sequence[str] = ()
    sort: SortState = field(default_factory=SortState)
    page: int = 1
    page_size: int = 10
    filters: Mapping[str, Any] = field(default_factory=dict)
    numeric_keys: frozenset = frozenset()
    tiebreak_key: Optional[str] = "id"


@dataclass
class PageResult:
    """One page of a filtered, sorted list."""

    items: list
    total: int
    page: int
    page_size: int

    @property
    def total_pages(self) -> int:
        """Number of pages needed for all rows."""
        return math.ceil(self.total / self.page_size) if self.page_size else 0

    def as_envelope(self, serialize=None) -> dict[str, Any]:
        """Build the list response envelope.

        Args:
            serialize: Optional callable applied to every item.

        Returns:
            Dictionary with "data" and "total" keys.
        """
        items = [serialize(item) for item in self.items] if serialize else list(self.items)
        return {"data": items, "total": self.total}


def _coerce_date(value: Any) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00")).date()
    except ValueError:
        return None


def matches_search(item: Any, term: str, fields: Sequence[str]) -> bool:
    """Check whether any of the given fields contains the search term."""
    if not term:
        return True
    needle = term.casefold()
    for name in fields:
        value = get_field(item, name)
        if value is not None and needle in str(value).casefold():
            return True
    return False


def _is_unset(expected: Any) -> bool:
    return expected is None or (isinstance(expected, str) and expected in UNSET_FILTER_VALUES)


def _values_equal(actual: Any, expected: Any) -> bool:
    if actual == expected:
        return True
    return actual is not None and str(actual) == str(expected)


def matches_filter(item: Any, name: str, expected: Any) -> bool:
    """Check a single filter predicate against a record."""
    if _is_unset(expected):
        return True
    actual = get_field(item, name)
    if isinstance(expected, DateRange):
        return expected.contains(actual)
    if isinstance(expected, tuple) and len(expected) == 2:
        low, high = expected
        if actual is None:
            return False
        number = parse_numeric(actual)
        if low is not None and number < parse_numeric(low):
            return False
        if high is not None and number > parse_numeric(high):
            return False
        return True
    if isinstance(expected, (list, set, frozenset)):
        wanted = [value for value in expected if not _is_unset(value)]
        return not wanted or any(_values_equal(actual, value) for value in wanted)
    return _values_equal(actual, expected)


def filter_items(
    items: Iterable[Any],
    search: str = "",
    search_fields: Sequence[str] = (),
    filters: Optional[Mapping[str, Any]] = None,
) -> list:
    """Apply search and filter predicates, keeping the input order."""
    filters = filters or {}
    return [
        item
        for item in items
        if matches_search(item, search, search_fields)
        and all(matches_filter(item, name, value) for name, value in filters.items())
    ]


def _sort_value(value: Any, numeric: bool) -> tuple:
    # (missing, type rank, comparable) keeps mixed columns orderable.
    if value is None or value == "":
        return (1, 0, "")
    if numeric:
        return (0, 0, parse_numeric(value))
    if isinstance(value, bool):
        return (0, 0, int(value))
    if isinstance(value, (int, float, Decimal)):
        return (0, 0, Decimal(str(value)))
    if isinstance(value, (date, datetime)):
        return (0, 1, value.isoformat())
    return (0, 2, locale.strxfrm(str(value).casefold()))


def sort_items(
    items: Sequence[Any],
    sort: SortState,
    numeric_keys: Iterable[str] = (),
    tiebreak_key: Optional[str] = "id",
) -> list:
    """Sort records by the state's key and direction.

    Descending order is the exact reverse of ascending order, so flipping the
    direction of the same key reverses the list. Rows with equal values are
    ordered by the tiebreak field.
    """
    if not sort.key:
        return list(items)
    numeric = sort.key in NUMERIC_SORT_KEYS or sort.key in set(numeric_keys)

    def key_func(item: Any) -> tuple:
        primary = _sort_value(get_field(item, sort.key), numeric)
        if tiebreak_key and tiebreak_key != sort.key:
            return primary + _sort_value(get_field(item, tiebreak_key), False)
        return primary

    ordered = sorted(items, key=key_func)
    if sort.direction == DESC:
        ordered.reverse()
    return ordered


def paginate(items: Sequence[Any], page: int, page_size: int) -> PageResult:
    """Slice one 1-indexed page out of a list.

    Pages below 1 clamp to the first page; pages past the end are empty.
    """
    page_size = max(int(page_size or 1), 1)
    page = max(int(page or 1), 1)
    start = (page - 1) * page_size
    return PageResult(
        items=list(items[start : start + page_size]),
        total=len(items),
        page=page,
        page_size=page_size,
    )


def run_list_query(items: Iterable[Any], query: ListQuery) -> PageResult:
    """Search, filter, sort and paginate a list of records.

    Args:
        items: Records to page through.
        query: Description of the view.

    Returns:
        The requested page and the total number of matching records.
    """
    matched = filter_items(items, query.search, query.search_fields, query.filters)
    ordered = sort_items(matched, query.sort, query.numeric_keys, query.tiebreak_key)
    return paginate(ordered, query.page, query.page_size)
