"""Tagged sample outcomes.

A sample either succeeds with a payload or fails with a reason. Both are
valid change log states, so a target flapping between "200" and
"connection refused" shows up as ordinary transitions.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Union


@dataclass(frozen=True)
class Ok:
    """Successful sample carrying the normalized payload."""
    payload: Dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return True

    def to_state(self) -> Dict[str, Any]:
        return dict(self.payload)


@dataclass(frozen=True)
class Err:
    """Failed sample carrying a human-readable reason."""
    reason: str

    @property
    def ok(self) -> bool:
        return False

    def to_state(self) -> Dict[str, Any]:
        return {"error": self.reason}


Outcome = Union[Ok, Err]
