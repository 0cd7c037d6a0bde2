"""Per-route validation rules and protected-path patterns.

The request pipeline runs before routing, so each rule carries its own path
regex; named groups become the route's path parameters.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any

from lottery_api.validation.schema import FieldType

READ_ONLY_METHODS = frozenset({"GET", "HEAD", "OPTIONS", "DELETE"})


@dataclass(frozen=True)
class RouteRule:
    """Validation rule for one method + path pattern."""

    methods: frozenset[str]
    pattern: re.Pattern
    protected: bool = False
    required_fields: tuple[str, ...] = ()
    type_schema: dict[str, FieldType] = field(default_factory=dict)

    def match(self, method: str, path: str) -> dict[str, str] | None:
        """Return path parameters if this rule applies, else None."""
        if method.upper() not in self.methods:
            return None
        found = self.pattern.fullmatch(path)
        return found.groupdict() if found else None


def _rule(methods: str, path: str, **kwargs: Any) -> RouteRule:
    return RouteRule(
        methods=frozenset(methods.split("|")),
        pattern=re.compile(path.rstrip("/") + "/?"),
        **kwargs,
    )


_COMBINATION_TYPES = {
    "balls": FieldType.ARRAY_OF_INTEGERS,
    "stars": FieldType.ARRAY_OF_INTEGERS,
}

ROUTE_RULES: tuple[RouteRule, ...] = (
    _rule(
        "POST", r"/user",
        protected=True,
        required_fields=("email",),
        type_schema={"email": FieldType.EMAIL},
    ),
    _rule(
        "PUT", r"/user/(?P<email>[^/]+)",
        protected=True,
        required_fields=("email",),
        type_schema={"email": FieldType.EMAIL},
    ),
    _rule("GET|HEAD|DELETE", r"/user/(?P<email>[^/]+)", protected=True),
    _rule(
        "POST", r"/combinations",
        protected=True,
        required_fields=("email", "balls", "stars"),
        type_schema={"email": FieldType.EMAIL, **_COMBINATION_TYPES},
    ),
    _rule(
        "PUT", r"/combinations/(?P<id>[^/]+)",
        protected=True,
        required_fields=("balls", "stars"),
        type_schema=dict(_COMBINATION_TYPES),
    ),
    _rule("GET|HEAD", r"/combinations/(?P<email>[^/]+)", protected=True),
    _rule("DELETE", r"/combinations/(?P<id>[^/]+)", protected=True),
    _rule(
        "POST", r"/results",
        protected=True,
        required_fields=("date", "balls", "stars"),
        type_schema={"date": FieldType.STRING, **_COMBINATION_TYPES},
    ),
    _rule("PUT|PATCH|DELETE", r"/results(/[^/]*)?", protected=True),
    _rule("GET|HEAD", r"/results/(?P<date>[^/]+)/winners", protected=True),
    _rule("GET|HEAD", r"/results/(?P<date>[^/]+)"),
)

# Rule applied to paths with no explicit entry
DEFAULT_RULE = RouteRule(methods=frozenset(), pattern=re.compile(r".*"))


def resolve_route(method: str, path: str) -> tuple[RouteRule, dict[str, str]]:
    """Find the rule for *method* + *path* and extract its path parameters."""
    for rule in ROUTE_RULES:
        params = rule.match(method, path)
        if params is not None:
            return rule, {k: v for k, v in params.items() if v is not None}
    return DEFAULT_RULE, {}


def is_protected_path(method: str, path: str) -> bool:
    """Return True if the route requires authentication."""
    rule, _ = resolve_route(method, path)
    return rule.protected
