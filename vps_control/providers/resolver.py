"""
VPS Control Identifier Resolver
===============================

Resolves a caller-supplied token (numeric ID or human name) to a vendor
catalog entry by scanning pages of a listing endpoint.

Numeric tokens are compared against ID fields, anything else against name
fields. The first matching entry wins; no attempt is made to detect
duplicates the backend might allow.
"""

import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Union

from .errors import not_found, validation_failed

logger = logging.getLogger(__name__)


PAGE_SIZE = 100

# Upper bound on pages scanned for one token, for backends that ignore paging
MAX_PAGES = 500

NUMERIC_PATTERN = re.compile(r"^\s*[+-]?(\d+(\.\d*)?|\.\d+)\s*$")


class _NotFound:
    """Sentinel for a token that matched no catalog entry."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "NOT_FOUND"


NOT_FOUND = _NotFound()

CatalogEntry = Mapping[str, Any]
ResolvedIdentifier = Union[CatalogEntry, _NotFound]


def is_numeric(value: Any) -> bool:
    """True for ints/floats and strings holding a number ("12", " 3.5")."""
    if isinstance(value, bool):
        return False
    if isinstance(value, (int, float)):
        return True
    if isinstance(value, str):
        return bool(NUMERIC_PATTERN.match(value))
    return False


def _numeric_key(value: Any) -> str:
    number = float(str(value).strip())
    return str(int(number)) if number.is_integer() else str(number)


@dataclass(frozen=True)
class Matcher:
    """
    How one entry field is compared against a token.

    ``by_id`` matchers are used for numeric tokens, the others for names.
    ``transform`` renders the raw field before comparison (for example a
    location JSON blob into "city, state, country").
    """
    field: str
    by_id: bool = False
    transform: Optional[Callable[[Any], Any]] = None

    def matches(self, token: Any, entry: CatalogEntry) -> bool:
        if self.field not in entry:
            return False
        value = entry[self.field]
        if self.transform is not None:
            value = self.transform(value)
        if value is None:
            return False
        if self.by_id:
            return is_numeric(value) and _numeric_key(value) == _numeric_key(token)
        return str(value) == str(token)


def by_id(field: str) -> Matcher:
    return Matcher(field, by_id=True)


def by_name(field: str, transform: Optional[Callable[[Any], Any]] = None) -> Matcher:
    return Matcher(field, by_id=False, transform=transform)


def paginate(
    fetch_page: Callable[[int, int], Sequence[CatalogEntry]],
    page_size: int = PAGE_SIZE,
    max_pages: int = MAX_PAGES,
) -> Iterator[Sequence[CatalogEntry]]:
    """
    Yield pages from ``fetch_page(page, page_size)`` starting at page 1.

    Stops after the first empty page. Filters belong inside ``fetch_page``
    as server-side query parameters.
    """
    for page in range(1, max_pages + 1):
        entries = fetch_page(page, page_size)
        if not entries:
            return
        yield entries
    logger.warning("Stopped paging after %d pages", max_pages)


def resolve(
    token: Any,
    pages: Iterable[Iterable[CatalogEntry]],
    matchers: Sequence[Matcher],
    or_fail: bool = True,
    what: str = "Entry",
    filters: Optional[Mapping[str, Any]] = None,
) -> ResolvedIdentifier:
    """
    Resolve ``token`` against catalog pages.

    Args:
        token: ID or name supplied by the caller
        pages: Iterable of pages; consumed lazily so scanning stops at the
            first match
        matchers: Candidate fields to compare
        or_fail: Raise NotFound instead of returning NOT_FOUND
        what: Human name of the catalog, used in error messages
        filters: Narrowing filters applied to the listing, for error context

    Returns:
        The first matching entry, or NOT_FOUND when ``or_fail`` is false

    Raises:
        ProviderError: ValidationFailed for an empty token, NotFound when
            nothing matches and ``or_fail`` is true
    """
    if token is None or (isinstance(token, str) and not token.strip()):
        raise validation_failed(f"{what} parameter is required", dict(filters or {}))

    numeric = is_numeric(token)
    candidates = [m for m in matchers if m.by_id == numeric]

    if candidates:
        for page in pages:
            for entry in page:
                if any(m.matches(token, entry) for m in candidates):
                    return entry

    if or_fail:
        raise not_found(f"{what} not found", _not_found_context(token, numeric, filters))
    return NOT_FOUND


def resolve_in(
    token: Any,
    entries: Iterable[CatalogEntry],
    matchers: Sequence[Matcher],
    or_fail: bool = True,
    what: str = "Entry",
    filters: Optional[Mapping[str, Any]] = None,
) -> ResolvedIdentifier:
    """Resolve against one already-loaded list, e.g. a cached catalog."""
    return resolve(token, [entries], matchers, or_fail=or_fail, what=what, filters=filters)


def _not_found_context(token: Any, numeric: bool, filters: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    context: Dict[str, Any] = {"id": token, "name": None} if numeric else {"id": None, "name": token}
    if filters:
        context.update(filters)
    return context


def entries_from(data: Any) -> List[CatalogEntry]:
    """Normalize a vendor list-or-dict collection into a list of entries."""
    if not data:
        return []
    if isinstance(data, Mapping):
        return list(data.values())
    return list(data)
