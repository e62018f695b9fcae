"""Metadata filter expressions: ``key<op>value``.

Supported operators: ``=``, ``>=``, ``<=``, ``>``, ``<`` and ``in`` (the
right-hand side of ``in`` is a comma-separated list). Filters combine with
logical AND; a key missing from a chunk's metadata excludes the chunk.

Ordering operators compare numerically when both sides are numbers, and
as calendar dates/times when both sides parse as ISO dates.
"""
import logging
import math
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Union

from .errors import InvalidFilterExpression

logger = logging.getLogger(__name__)

OPERATORS = ("=", ">=", "<=", ">", "<", "in")
FILTER_FLAG = "--filter"

_EXPR_RE = re.compile(r"^([^\s><=]+)\s*(>=|<=|=|>|<|in)\s*(.+)$")


@dataclass(frozen=True)
class Filter:
    key: str
    op: str
    value: Union[str, tuple]

    def __post_init__(self):
        # Any non-string sequence is stored as a tuple so the filter stays hashable
        if not isinstance(self.value, str):
            object.__setattr__(self, "value", tuple(str(v) for v in self.value))

    def __str__(self):
        value = self.value if isinstance(self.value, str) else ",".join(self.value)
        if self.op == "in":
            return f"{self.key} in {value}"
        return f"{self.key}{self.op}{value}"


def parse_filter(expression: str) -> Filter:
    """Parse one expression.

    Raises:
        InvalidFilterExpression: If ``expression`` does not match the grammar.
    """
    match = _EXPR_RE.match(expression.strip())
    if not match:
        raise InvalidFilterExpression(expression)
    key, op, raw = match.groups()
    if op == "in":
        items = tuple(s.strip() for s in raw.split(","))
        return Filter(key=key, op=op, value=items)
    return Filter(key=key, op=op, value=raw.strip())


def parse_filters(args: Sequence[str], flag: str = FILTER_FLAG) -> List[Filter]:
    """Collect filters from a raw argv-style list.

    Library helper for hooks and scripts that receive an unparsed argument
    vector; the ``flatrag`` CLI collects ``--filter`` with argparse instead
    and passes the expressions to ``coerce_filters``.

    Accepts ``--filter key=val`` and ``--filter=key=val``. Bad expressions
    are logged and skipped; other tokens are ignored.
    """
    filters = []
    prefix = flag + "="
    i = 0
    while i < len(args):
        token = args[i]
        expression = None
        if token == flag:
            expression = args[i + 1] if i + 1 < len(args) else None
            i += 1  # skip value token
        elif token.startswith(prefix):
            expression = token[len(prefix):]
        i += 1

        if not expression:
            continue
        try:
            filters.append(parse_filter(expression))
        except InvalidFilterExpression:
            logger.warning("Ignoring bad filter expression: '%s'", expression)

    logger.debug("Parsed filters: %s", [str(f) for f in filters])
    return filters


def coerce_filters(items: Iterable[Union[Filter, str]]) -> List[Filter]:
    """Accept Filter objects or bare expression strings."""
    filters = []
    for item in items:
        if isinstance(item, Filter):
            filters.append(item)
            continue
        try:
            filters.append(parse_filter(item))
        except InvalidFilterExpression:
            logger.warning("Ignoring bad filter expression: '%s'", item)
    return filters


# --- Evaluation ---

def _stringify(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (list, tuple)):
        return ",".join(_stringify(v) for v in value)
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return str(value)


def _to_number(text: str) -> Optional[float]:
    try:
        number = float(text)
    except ValueError:
        return None
    return number if math.isfinite(number) else None


def _to_timestamp(text: str) -> Optional[float]:
    try:
        moment = datetime.fromisoformat(text.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.timestamp()


def _compare(op: str, left: float, right: float) -> bool:
    if op == ">=":
        return left >= right
    if op == "<=":
        return left <= right
    if op == ">":
        return left > right
    if op == "<":
        return left < right
    return False


def satisfies(meta: Mapping[str, Any], f: Filter) -> bool:
    """Evaluate one filter against a metadata mapping."""
    actual_raw = meta.get(f.key) if meta else None
    if actual_raw is None:
        return False
    actual = _stringify(actual_raw)

    if f.op == "=":
        return actual == f.value
    if f.op == "in":
        options = tuple(s.strip() for s in f.value.split(",")) if isinstance(f.value, str) else f.value
        return actual in options

    expected = f.value if isinstance(f.value, str) else ",".join(f.value)
    left, right = _to_number(actual), _to_number(expected)
    if left is None or right is None:
        left, right = _to_timestamp(actual), _to_timestamp(expected)
    if left is None or right is None:
        return False
    return _compare(f.op, left, right)


def matches(meta: Mapping[str, Any], filters: Sequence[Filter]) -> bool:
    """True when every filter is satisfied. No filters admits everything."""
    return all(satisfies(meta, f) for f in filters)
