# src/async_docstore/base/normalizer.py

"""
Query normalization.

Rewrites every identifier field of a query into the store's native identifier
type, wherever it appears: top level, inside nested documents, inside
``$and``/``$or`` branches, and inside ``$in``/``$nin`` sets placed under an
identifier field. The input query is never modified; a rewritten copy is
returned.
"""

import logging
from typing import Any, Mapping

from async_docstore.base.identifiers import IdentifierCodec

log = logging.getLogger(__name__)

ID_FIELD = "_id"
SET_OPERATORS = ("$in", "$nin")


def _cast_single(value: Any, codec: IdentifierCodec) -> Any:
    if codec.matches_pattern(value):
        return codec.cast(value)
    return value


def _normalize_id_value(value: Any, codec: IdentifierCodec) -> Any:
    """Apply the identifier rewrite rule to the value of an identifier field."""
    if codec.matches_pattern(value):
        return codec.cast(value)

    if isinstance(value, Mapping):
        rewritten = dict(value)
        for operator in SET_OPERATORS:
            members = rewritten.get(operator)
            # TODO: $not wrapping an $in/$nin set is passed through as-is
            if isinstance(members, (list, tuple)):
                rewritten[operator] = [_cast_single(m, codec) for m in members]
        return rewritten

    return value


def _normalize_node(node: Any, codec: IdentifierCodec, id_field: str) -> Any:
    if isinstance(node, Mapping):
        result = {}
        for key, value in node.items():
            if key == id_field:
                value = _normalize_id_value(value, codec)
            result[key] = _normalize_node(value, codec, id_field)
        return result
    if isinstance(node, list):
        return [_normalize_node(item, codec, id_field) for item in node]
    if isinstance(node, tuple):
        return tuple(_normalize_node(item, codec, id_field) for item in node)
    return node


def normalize_query(
    query: Any, codec: IdentifierCodec, id_field: str = ID_FIELD
) -> Any:
    """
    Return a copy of `query` with identifier fields in native form.

    Args:
        query: Arbitrary nested mapping/sequence structure. None yields {}.
        codec: Converts caller-facing identifiers to the native type.
        id_field: Name of the reserved identifier field.

    Returns:
        The rewritten query. Values that cannot be converted, and malformed
        operator documents, are passed through unchanged.
    """
    if query is None:
        return {}
    normalized = _normalize_node(query, codec, id_field)
    log.debug(f"Normalized query: {normalized}")
    return normalized
