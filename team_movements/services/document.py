"""Read-only accessors over a parsed movement document."""

import json
from pathlib import Path
from typing import Any, Callable, List, Optional, Tuple, Union

from team_movements.core.exceptions import DocumentParseError
from team_movements.services.coercion import CoercionResult, WarningSink, coerce_str


class JsonNode:
    """A node of a parsed JSON document with optional-field accessors.

    Missing keys, wrong container types and nulls all read as "absent"
    instead of raising, which matches how loosely the source files are
    structured.
    """

    __slots__ = ("_value",)

    def __init__(self, value: Any):
        self._value = value

    @classmethod
    def parse(cls, text: str) -> "JsonNode":
        """Parse a document; the root must be a JSON object."""
        try:
            value = json.loads(text)
        except (json.JSONDecodeError, TypeError) as e:
            raise DocumentParseError(f"Invalid JSON: {e}", e) from e
        if not isinstance(value, dict):
            raise DocumentParseError(
                f"Expected a JSON object at the document root, got {type(value).__name__}"
            )
        return cls(value)

    @property
    def raw(self) -> Any:
        return self._value

    @property
    def is_object(self) -> bool:
        return isinstance(self._value, dict)

    @property
    def is_missing(self) -> bool:
        return self._value is None

    def value(self, key: str) -> Any:
        """Raw value under ``key`` or None."""
        if isinstance(self._value, dict):
            return self._value.get(key)
        return None

    def child(self, key: str) -> "JsonNode":
        return JsonNode(self.value(key))

    def path(self, *keys: str) -> "JsonNode":
        node = self
        for key in keys:
            node = node.child(key)
        return node

    def get_str(self, key: str) -> Optional[str]:
        return coerce_str(self.value(key))

    def get_text(self, key: str) -> str:
        """Like ``get_str`` but absent values read as an empty string."""
        return self.get_str(key) or ""

    def get_object(self, key: str) -> Optional["JsonNode"]:
        value = self.value(key)
        return JsonNode(value) if isinstance(value, dict) else None

    def get_array(self, key: str) -> List["JsonNode"]:
        value = self.value(key)
        if not isinstance(value, list):
            return []
        return [JsonNode(item) for item in value]

    def keys(self) -> List[str]:
        return list(self._value) if isinstance(self._value, dict) else []

    def as_str(self) -> Optional[str]:
        return coerce_str(self._value)

    def __repr__(self) -> str:
        return f"JsonNode({self._value!r})"


def extract_field(
    node: Optional[JsonNode],
    path: Tuple[str, ...],
    coerce: Callable[..., CoercionResult],
    sink: WarningSink,
    field_name: Optional[str] = None,
    **kwargs: Any,
) -> Any:
    """Read ``path`` from ``node`` and run it through a coercion function.

    Args:
        node: Object to read from; None reads as absent
        path: Keys to follow from ``node``
        coerce: One of the ``coerce_*`` functions taking (value, field, sink)
        sink: Where coercion warnings go
        field_name: Name used in warnings; defaults to the last path key
        **kwargs: Extra arguments for ``coerce`` such as ``default``

    Returns:
        The coerced value, or the coercion's default on failure
    """
    raw = node.path(*path).raw if node is not None else None
    name = field_name or path[-1]
    return coerce(raw, name, sink, **kwargs).value


def find_movement_files(directory: Union[str, Path], pattern: str) -> List[Path]:
    """Recursively list files under ``directory`` matching ``pattern``, sorted."""
    root = Path(directory)
    if not root.is_dir():
        return []
    return sorted(path for path in root.rglob(pattern) if path.is_file())
