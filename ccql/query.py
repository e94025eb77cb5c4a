"""A small jq-like query language over JSON values."""

from __future__ import annotations

import re
from typing import Any, Iterable

_INDEX = re.compile(r"\+?[0-9]+")
_USIZE_MAX = 2**64 - 1
_FIELD_END = re.compile(r"[.\[|]")


def _parse_index(text: str) -> int | None:
    if not _INDEX.fullmatch(text):
        return None
    value = int(text)
    return value if value <= _USIZE_MAX else None


class QueryEngine:
    """Evaluates paths, iteration, indexing, select() filters and pipes."""

    def execute(self, query: str, value: Any) -> list[Any]:
        query = query.strip()

        if query == ".":
            return [value]

        if query.startswith(".[]"):
            rest = query[3:]
            if not isinstance(value, list):
                return []
            if not rest:
                return list(value)
            return [result for item in value for result in self.execute(rest, item)]

        if query.startswith(".["):
            end = query.find("]")
            if end != -1:
                index = _parse_index(query[2:end])
                if index is not None:
                    rest = query[end + 1:]
                    if not isinstance(value, list) or index >= len(value):
                        return []
                    item = value[index]
                    return [item] if not rest else self.execute(rest, item)

        if query.startswith("."):
            field_query = query[1:]
            match = _FIELD_END.search(field_query)
            if match:
                name, rest = field_query[:match.start()], field_query[match.start():]
            else:
                name, rest = field_query, ""
            if isinstance(value, dict) and name in value:
                found = value[name]
                return [found] if not rest else self.execute(rest, found)
            return [None]

        if query.startswith("select("):
            end = query.rfind(")")
            if end != -1:
                if not self._evaluate_condition(query[7:end], value):
                    return []
                rest = query[end + 1:].lstrip(" |").strip()
                return [value] if not rest else self.execute(rest, value)

        if "|" in query:
            first, second = (part.strip() for part in query.split("|", 1))
            return [
                result
                for item in self.execute(first, value)
                for result in self.execute(second, item)
            ]

        return [value]

    def _first(self, path: str, value: Any) -> tuple[bool, Any]:
        results = self.execute(path, value)
        return (True, results[0]) if results else (False, None)

    def _evaluate_condition(self, condition: str, value: Any) -> bool:
        condition = condition.strip()

        if "==" in condition:
            left, right = condition.split("==", 1)
            found, result = self._first(left.strip(), value)
            if found:
                return isinstance(result, str) and result == right.strip().strip('"')

        if "!=" in condition:
            left, right = condition.split("!=", 1)
            found, result = self._first(left.strip(), value)
            if found:
                return not isinstance(result, str) or result != right.strip().strip('"')

        if "test(" in condition:
            pipe = condition.find("|")
            if pipe != -1:
                path = condition[:pipe].strip()
                test_part = condition[pipe + 1:].strip()
                end = test_part.rfind(")")
                if test_part.startswith("test(") and end != -1:
                    pattern = test_part[5:end].strip().strip('"')
                    found, result = self._first(path, value)
                    if found and isinstance(result, str):
                        return pattern in result

        return False

    def execute_on_array(self, query: str, inputs: Iterable[Any]) -> list[Any]:
        return self.execute(query, list(inputs))

    def execute_per_item(self, query: str, inputs: Iterable[Any]) -> list[Any]:
        return [result for item in inputs for result in self.execute(query, item)]


class FilterBuilder:
    """Builds query strings for common filters."""

    @staticmethod
    def select_type(message_type: str) -> str:
        return f'select(.type == "{message_type}")'

    @staticmethod
    def select_field_contains(field: str, value: str) -> str:
        return f'select(.{field} | test("{value}"))'

    @staticmethod
    def project_fields(fields: Iterable[str]) -> str:
        listing = ", ".join(f"{name}: .{name}" for name in fields)
        return f"{{ {listing} }}"