"""Redis key prefixing for namespaced access."""

from collections.abc import Iterable, Mapping
from typing import Any

SEPARATOR = ":"


def normalize_namespace(namespace: str) -> str:
    """
    Turn a namespace into its key prefix.

    The prefix always ends with exactly one separator, so "auth" and
    "auth:" name the same namespace. The empty namespace yields ":".
    """
    if namespace.endswith(SEPARATOR):
        return namespace
    return f"{namespace}{SEPARATOR}"


def add_prefix(prefix: str, key: str) -> str:
    """Physical key for a logical key. Plain concatenation, no escaping."""
    return f"{prefix}{key}"


def add_prefixes(prefix: str, keys: Iterable[str]) -> list[str]:
    """Physical keys for a sequence of logical keys, order preserved."""
    return [add_prefix(prefix, key) for key in keys]


def remove_prefix(prefix: str, key: str) -> str:
    """Logical key for a physical key; keys outside the prefix are returned as-is."""
    if key.startswith(prefix):
        return key[len(prefix):]
    return key


def prefix_mapping(prefix: str, mapping: Mapping[str, Any]) -> dict[str, Any]:
    """New dict keyed by physical keys; values are left untouched."""
    return {add_prefix(prefix, key): value for key, value in mapping.items()}
