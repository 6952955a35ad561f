import logging
from dataclasses import asdict, is_dataclass
from typing import Any, Dict, Mapping

logger = logging.getLogger(__name__)

_MISSING = object()


def prepare_for_storage(data: Any) -> Any:
    """
    Recursively convert document bodies to plain storage-compatible values.

    Handles:
    - Pydantic BaseModel instances (dumped by alias)
    - Python dataclasses
    - Mappings (copied, values processed recursively)
    - Lists, tuples and sets (processing each item)
    - Pydantic URL types (converted to strings)

    Native driver values such as ObjectId or datetime are returned as-is, and
    the result never shares containers with the input, so drivers that
    annotate inserted documents do not modify the caller's data.

    Args:
        data: The data to convert

    Returns:
        The converted data, ready for storage
    """
    if data is None:
        return None

    if is_dataclass(data) and not isinstance(data, type):
        return prepare_for_storage(asdict(data))

    if hasattr(data, "model_dump") and callable(getattr(data, "model_dump")):
        try:
            # python mode keeps datetimes and ObjectIds native for the driver
            serialized = data.model_dump(mode="python", by_alias=True)
        except Exception as e:
            logger.debug(f"Error using model_dump(by_alias=True): {e}")
            serialized = dict(data.__dict__)
        return prepare_for_storage(serialized)

    if isinstance(data, Mapping):
        return {k: prepare_for_storage(v) for k, v in data.items()}

    if isinstance(data, list):
        return [prepare_for_storage(item) for item in data]

    if isinstance(data, tuple):
        return tuple(prepare_for_storage(item) for item in data)

    if isinstance(data, (set, frozenset)):
        return [prepare_for_storage(item) for item in data]

    if data.__class__.__module__.startswith("pydantic.networks") or (
        data.__class__.__module__.startswith("pydantic_core")
        and data.__class__.__name__.endswith("Url")
    ):
        return str(data)

    return data


def get_nested_value(document: Mapping[str, Any], path: str, default: Any = _MISSING) -> Any:
    """
    Get a value from a document using dot notation.

    Returns `default` (or the module sentinel `_MISSING`) when any part of
    the path is absent. Numeric parts index into lists.
    """
    current: Any = document
    for part in path.split("."):
        if isinstance(current, Mapping):
            if part not in current:
                return default
            current = current[part]
        elif isinstance(current, list) and part.isdigit():
            index = int(part)
            if index >= len(current):
                return default
            current = current[index]
        else:
            return default
    return current


def set_nested_value(document: Dict[str, Any], path: str, value: Any) -> bool:
    """
    Set a value at a nested field using dot notation, creating intermediate
    documents as needed. Returns False if a non-document value is in the way.
    """
    parts = path.split(".")
    current = document
    for part in parts[:-1]:
        if part not in current:
            current[part] = {}
        elif not isinstance(current[part], dict):
            return False
        current = current[part]
    current[parts[-1]] = value
    return True


def is_missing(value: Any) -> bool:
    return value is _MISSING
