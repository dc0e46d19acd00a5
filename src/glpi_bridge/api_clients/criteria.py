"""Translation of structured search criteria into GLPI search queries.

GLPI's ``/search/<ItemType>`` endpoint takes positional, bracket-indexed
parameters::

    criteria[0][field]=4&criteria[0][searchtype]=equals&criteria[0][value]=6
    &forcedisplay[0]=2&forcedisplay[1]=1&range=0-19

Everything in this module is pure: the same inputs always produce the same
ordered parameter list and the same encoded query string.
"""

import re
from enum import Enum
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Tuple, Union
from urllib.parse import urlencode

from pydantic import BaseModel, ValidationError as PydanticValidationError

from ..exceptions import ValidationError


DEFAULT_FORCE_DISPLAY: Tuple[int, ...] = (2, 1, 12, 15)
DEFAULT_LIMIT = 50
DEFAULT_OFFSET = 0

_ITEM_TYPE_PATTERN = re.compile(r"^[A-Za-z][A-Za-z0-9_]*$")


class SearchType(str, Enum):
    """Operators understood by the GLPI search engine."""
    CONTAINS = "contains"
    EQUALS = "equals"
    NOT_EQUALS = "notequals"
    LESS_THAN = "lessthan"
    MORE_THAN = "morethan"
    UNDER = "under"
    NOT_UNDER = "notunder"


class CriterionLink(str, Enum):
    """Logical joiner placed before a criterion."""
    AND = "AND"
    OR = "OR"
    AND_NOT = "AND NOT"
    OR_NOT = "OR NOT"


class SearchCriterion(BaseModel):
    """One ``(field, searchtype, value)`` filter."""
    field: int
    searchtype: SearchType
    value: Union[int, float, str]
    link: Optional[CriterionLink] = None

    def value_text(self) -> str:
        """Textual form of the value as sent on the wire."""
        if isinstance(self.value, float) and self.value.is_integer():
            return str(int(self.value))
        return str(self.value)


CriterionInput = Union[SearchCriterion, Mapping[str, Any]]


def coerce_criteria(criteria: Optional[Iterable[CriterionInput]]) -> List[SearchCriterion]:
    """Validate criteria given as models or plain mappings, keeping their order."""
    result: List[SearchCriterion] = []
    for position, item in enumerate(criteria or []):
        if isinstance(item, SearchCriterion):
            result.append(item)
            continue
        try:
            result.append(SearchCriterion.model_validate(item))
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid search criterion at position {position}: {e}") from e
    return result


def _coerce_field_ids(force_display: Optional[Iterable[Any]]) -> List[int]:
    if force_display is None:
        return list(DEFAULT_FORCE_DISPLAY)

    field_ids = []
    for position, field_id in enumerate(force_display):
        if isinstance(field_id, bool):
            raise ValidationError(f"Invalid display field at position {position}: {field_id!r}")
        try:
            field_ids.append(int(field_id))
        except (TypeError, ValueError) as e:
            raise ValidationError(f"Invalid display field at position {position}: {field_id!r}") from e
    return field_ids


def format_range(limit: int, offset: int) -> str:
    """Encode a pagination window as GLPI's inclusive ``start-end`` range.

    ``limit=0`` yields an inverted range (``offset-(offset-1)``) which is
    passed through as-is.
    """
    if limit < 0 or offset < 0:
        raise ValidationError(f"limit and offset must be >= 0 (got limit={limit}, offset={offset})")
    return f"{offset}-{offset + limit - 1}"


def build_search_params(
    criteria: Optional[Iterable[CriterionInput]] = None,
    force_display: Optional[Iterable[Any]] = None,
    limit: int = DEFAULT_LIMIT,
    offset: int = DEFAULT_OFFSET,
    sort: Optional[int] = None,
    order: Optional[str] = None
) -> List[Tuple[str, str]]:
    """Serialize search inputs into an ordered list of query parameters.

    Args:
        criteria: Ordered filters; position ``i`` becomes ``criteria[i]``
        force_display: Ordered field ids to include in the result rows
        limit: Page size
        offset: Index of the first row
        sort: Optional field id to sort on
        order: ``ASC`` or ``DESC`` when sorting

    Returns:
        List of ``(key, value)`` pairs in wire order
    """
    params: List[Tuple[str, str]] = []

    for i, criterion in enumerate(coerce_criteria(criteria)):
        if criterion.link is not None:
            params.append((f"criteria[{i}][link]", criterion.link.value))
        params.append((f"criteria[{i}][field]", str(int(criterion.field))))
        params.append((f"criteria[{i}][searchtype]", criterion.searchtype.value))
        params.append((f"criteria[{i}][value]", criterion.value_text()))

    for j, field_id in enumerate(_coerce_field_ids(force_display)):
        params.append((f"forcedisplay[{j}]", str(field_id)))

    params.append(("range", format_range(limit, offset)))

    if sort is not None:
        params.append(("sort", str(int(sort))))
        if order:
            order = order.upper()
            if order not in ("ASC", "DESC"):
                raise ValidationError(f"order must be ASC or DESC (got {order!r})")
            params.append(("order", order))

    return params


def encode_query(params: Union[Mapping[str, Any], Sequence[Tuple[str, Any]]]) -> str:
    """URL-encode query parameters, keeping their order and literal brackets."""
    items = params.items() if isinstance(params, Mapping) else params
    return urlencode([(key, "" if value is None else str(value)) for key, value in items], safe="[]")


def encode_search_query(*args, **kwargs) -> str:
    """Build and encode a search query string; see ``build_search_params``."""
    return encode_query(build_search_params(*args, **kwargs))


def validate_item_type(item_type: str) -> str:
    """Ensure an item type is usable as a single path segment."""
    if not isinstance(item_type, str) or not _ITEM_TYPE_PATTERN.match(item_type):
        raise ValidationError(f"Invalid item type: {item_type!r}")
    return item_type


def search_path(item_type: str, *args, **kwargs) -> str:
    """Compose ``search/<ItemType>?<query>`` for the given inputs."""
    return f"search/{validate_item_type(item_type)}?{encode_search_query(*args, **kwargs)}"
