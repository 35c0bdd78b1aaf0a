"""Substitution of ``<symbol>`` placeholder tokens in scenario configuration strings."""

from __future__ import annotations

import re
from enum import StrEnum
from typing import TYPE_CHECKING, Final

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

_PLACEHOLDER_PATTERN: Final[re.Pattern[str]] = re.compile(r"<([a-zA-Z]+)>")


class Placeholder(StrEnum):
    """Symbols a scenario configuration may reference."""

    PROJECT_ROOT = "projectRoot"
    SCENARIO_ROOT = "scenarioRoot"


class PlaceholderResolver:
    """Replace known ``<symbol>`` tokens with the current value of their getter.

    Getters are called at resolution time, so the resolver always reflects the
    latest value of the symbol. Unknown tokens are kept verbatim, and
    substituted values are never scanned again.
    """

    def __init__(self, mapping: Mapping[str, Callable[[], str]]) -> None:
        self._mapping = dict(mapping)

    @classmethod
    def for_paths(
        cls,
        *,
        project_root: Callable[[], str],
        scenario_root: Callable[[], str],
    ) -> PlaceholderResolver:
        return cls(
            {
                Placeholder.PROJECT_ROOT.value: project_root,
                Placeholder.SCENARIO_ROOT.value: scenario_root,
            }
        )

    @property
    def symbols(self) -> frozenset[str]:
        return frozenset(self._mapping)

    def resolve(self, text: str) -> str:
        return _PLACEHOLDER_PATTERN.sub(self._substitute, text)

    def _substitute(self, match: re.Match[str]) -> str:
        getter = self._mapping.get(match.group(1))
        if getter is None:
            return match.group(0)
        return str(getter())


__all__ = ["Placeholder", "PlaceholderResolver"]
