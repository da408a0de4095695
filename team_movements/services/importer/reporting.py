"""Grouping of import warnings and errors into readable categories."""

from typing import Callable, Dict, Iterable, List, Sequence, Tuple

# (substrings, category); the first rule with a matching substring wins
ERROR_RULES: Sequence[Tuple[Tuple[str, ...], str]] = (
    (("GetInt32", "value as integer", "invalid input syntax for type integer"), "Integer Parsing Error"),
    (("GetDecimal", "GetDouble", "invalid input syntax for type numeric", "numeric field overflow"),
     "Decimal Parsing Error"),
    (("baseHours",), "Base Hours Field Error"),
    (("workingDaysPerWeek",), "Working Days Field Error"),
    (("salary",), "Salary Field Error"),
    (("DateTime", "date"), "Date Parsing Error"),
    (("57P03", "shutting down", "CannotConnectNowError", "connection was closed"),
     "Database Connection Error"),
    (("end of the stream", "ConnectionResetError", "Connection reset"), "Network Connection Error"),
)

WARNING_RULES: Sequence[Tuple[Tuple[str, ...], str]] = (
    (("parse time string",), "Time Parsing Warning"),
    (("parse workingDaysPerWeek",), "Working Days Format Warning"),
    (("parse baseHours",), "Base Hours Format Warning"),
    (("parse salary",), "Salary Format Warning"),
    (("import mutual flag",), "Mutual Flag Warning"),
    (("import shift",), "Shift Import Warning"),
    (("import week",), "Week Import Warning"),
    (("import break",), "Break Import Warning"),
    (("cost centre",), "Cost Centre Warning"),
    (("date:", "numeric timestamp"), "Date Format Warning"),
)

OTHER_ERROR = "Other Error"
OTHER_WARNING = "Other Warning"


def _categorize(message: str, rules: Sequence[Tuple[Tuple[str, ...], str]], default: str) -> str:
    for needles, category in rules:
        if any(needle in message for needle in needles):
            return category
    return default


def categorize_error(message: str) -> str:
    return _categorize(message, ERROR_RULES, OTHER_ERROR)


def categorize_warning(message: str) -> str:
    return _categorize(message, WARNING_RULES, OTHER_WARNING)


def summarize(
    messages: Iterable[str],
    categorizer: Callable[[str], str],
    sample_size: int = 5,
) -> Dict[str, Dict[str, object]]:
    """Group messages by category.

    Args:
        messages: Warning or error strings
        categorizer: ``categorize_warning`` or ``categorize_error``
        sample_size: Maximum number of example messages kept per category

    Returns:
        ``{category: {"count": n, "samples": [...]}}`` ordered by descending
        count, ties in order of first appearance
    """
    groups: Dict[str, List[str]] = {}
    counts: Dict[str, int] = {}
    for message in messages:
        category = categorizer(message)
        counts[category] = counts.get(category, 0) + 1
        samples = groups.setdefault(category, [])
        if len(samples) < sample_size:
            samples.append(message)

    ordered = sorted(counts, key=lambda category: -counts[category])
    return {category: {"count": counts[category], "samples": groups[category]} for category in ordered}
