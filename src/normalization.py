"""State normalization module.

Pure functions with no I/O or side effects. A normalization filter maps
field names to either ``True`` (keep the field verbatim) or a regular
expression string (keep only the first matching substring).
"""

import re
from typing import Any, Dict, Mapping, Optional

from config import ConfigError


NO_MATCH = "no-match"


class InvalidFilterRuleError(ConfigError):
    """Raised when a normalization filter is malformed."""
    pass


class NormalizationError(ValueError):
    """Raised when a sampled state cannot be normalized by a valid filter."""
    pass


def validate_filter(json_filter: Optional[Mapping[str, Any]]) -> None:
    """Validate a normalization filter.

    Args:
        json_filter: Mapping of field name to rule, or None for no filter

    Raises:
        InvalidFilterRuleError: If the filter is empty, not a mapping, or
            holds a rule that is neither True nor a valid pattern
    """
    if json_filter is None:
        return

    if not isinstance(json_filter, Mapping):
        raise InvalidFilterRuleError(
            f"Filter must be a mapping, got {type(json_filter).__name__}"
        )
    if not json_filter:
        raise InvalidFilterRuleError("Filter must name at least one field")

    for field, rule in json_filter.items():
        if rule is True:
            continue
        if isinstance(rule, str):
            try:
                re.compile(rule)
            except re.error as e:
                raise InvalidFilterRuleError(
                    f"Invalid pattern for field '{field}': {rule!r} ({e})"
                )
            continue
        raise InvalidFilterRuleError(
            f"Cannot normalize field '{field}': rule must be true or a pattern, "
            f"got {rule!r}"
        )


def normalize(state: Any, json_filter: Optional[Mapping[str, Any]]) -> Any:
    """Normalize a raw state for hashing and storage.

    Args:
        state: Raw sampled state
        json_filter: Normalization filter, or None to keep the state as is

    Returns:
        The state unchanged when json_filter is None, otherwise a new dict
        holding only the filtered fields

    Raises:
        InvalidFilterRuleError: If a rule is neither True nor a string
        NormalizationError: If a filter is given but state is not a mapping

    Example:
        >>> normalize({"date": "2024-01-01T10:15:30Z", "color": "blue", "age": 25},
        ...           {"date": "[-T0-9]+:[0-9]+", "color": True})
        {'date': '2024-01-01T10:15', 'color': 'blue'}
    """
    if json_filter is None:
        return state

    if not isinstance(state, Mapping):
        raise NormalizationError(
            f"Cannot apply filter to {type(state).__name__} state"
        )

    normalized: Dict[str, Any] = {}
    for field, rule in json_filter.items():
        if rule is True:
            if field in state:
                normalized[field] = state[field]
        elif isinstance(rule, str):
            value = state.get(field)
            if value is None:
                continue
            text = value if isinstance(value, str) else str(value)
            match = re.search(rule, text)
            normalized[field] = match.group(0) if match else NO_MATCH
        else:
            raise InvalidFilterRuleError(
                f"Cannot normalize field '{field}': rule must be true or a pattern, "
                f"got {rule!r}"
            )

    return normalized
