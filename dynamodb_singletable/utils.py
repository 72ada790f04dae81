"""
Single-Table Utilities

Helpers shared by the table facade and models:
- Deep merge of nested dicts and lists
- Value template variables (``${name}``)
- Grouping items by model type
- ID generation (UUID v4 and ULID)
"""

import copy
import logging
import os
import re
import time
import uuid
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

from .exceptions import ValidationError

logger = logging.getLogger(__name__)

MAX_MERGE_DEPTH = 50


# =============================================================================
# Deep Merge
# =============================================================================

def _merge_one(depth: int, dest: Any, src: Any) -> Any:
    if depth > MAX_MERGE_DEPTH:
        raise ValidationError(f"Recursive merge exceeds maximum depth of {MAX_MERGE_DEPTH}")
    depth += 1

    if isinstance(src, list):
        entries = enumerate(src)
    else:
        entries = src.items()

    for key, value in entries:
        if isinstance(value, datetime):
            value = copy.copy(value)

        elif isinstance(value, re.Pattern):
            value = re.compile(value.pattern, value.flags)

        elif isinstance(value, list):
            current = _get(dest, key)
            value = _merge_one(depth, current if isinstance(current, list) else [], value)

        elif isinstance(value, Mapping):
            current = _get(dest, key)
            value = _merge_one(depth, current if isinstance(current, dict) else {}, value)

        _set(dest, key, value)
    return dest


def _get(container: Any, key: Any) -> Any:
    if isinstance(container, list):
        return container[key] if key < len(container) else None
    return container.get(key)


def _set(container: Any, key: Any, value: Any) -> None:
    if isinstance(container, list):
        if key < len(container):
            container[key] = value
        else:
            container.extend([None] * (key - len(container)))
            container.append(value)
    else:
        container[key] = value


def merge(dest: Dict[str, Any], *sources: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """Deep merge sources into dest, left to right.

    Nested dicts and lists are merged element-wise; datetimes and compiled
    patterns are copied rather than shared.

    Args:
        dest: Target dictionary, modified in place
        *sources: Mappings to merge in; None is skipped

    Returns:
        dest

    Raises:
        ValidationError: If nesting exceeds the maximum merge depth
    """
    for src in sources:
        if src:
            dest = _merge_one(0, dest, src)
    return dest


# =============================================================================
# Value Templates
# =============================================================================

TEMPLATE_VAR = re.compile(r'\$\{(.*?)\}')


def get_vars(template: Any) -> List[str]:
    """Return the variable names referenced by a value template.

    Examples:
        >>> get_vars('${type}#${id}')
        ['type', 'id']
    """
    if isinstance(template, list):
        return list(template)
    if not isinstance(template, str):
        return []
    return TEMPLATE_VAR.findall(template)


def expand_template(template: str, values: Mapping[str, Any]) -> Optional[str]:
    """Expand ``${name}`` references from values.

    Returns None if any referenced variable is missing, so partially known
    keys are never written.
    """
    missing = False

    def replace(match):
        nonlocal missing
        value = values.get(match.group(1))
        if value is None:
            missing = True
            return ''
        return str(value)

    result = TEMPLATE_VAR.sub(replace, template)
    return None if missing else result


def template_prefix(template: str, values: Mapping[str, Any]) -> str:
    """Expand a template up to its first missing variable.

    Used to turn a partially known sort key into a ``begins_with`` prefix.

    Examples:
        >>> template_prefix('user#${id}', {})
        'user#'
    """
    prefix = []
    position = 0
    for match in TEMPLATE_VAR.finditer(template):
        prefix.append(template[position:match.start()])
        value = values.get(match.group(1))
        if value is None:
            return ''.join(prefix)
        prefix.append(str(value))
        position = match.end()
    prefix.append(template[position:])
    return ''.join(prefix)


# =============================================================================
# Items
# =============================================================================

def group_by_type(items: List[Dict[str, Any]], type_field: str = '_type') -> Dict[str, List[Dict[str, Any]]]:
    """Group items into lists keyed by their model type."""
    result: Dict[str, List[Dict[str, Any]]] = {}
    for item in items:
        result.setdefault(item.get(type_field) or '_unknown', []).append(item)
    return result


# =============================================================================
# ID Generation
# =============================================================================

# Crockford's base32
ULID_ALPHABET = '0123456789ABCDEFGHJKMNPQRSTVWXYZ'


def make_uuid() -> str:
    return str(uuid.uuid4())


def make_ulid() -> str:
    """Return a time-sortable ULID: 48-bit ms timestamp + 80 random bits, 26 chars."""
    value = (int(time.time() * 1000) << 80) | int.from_bytes(os.urandom(10), 'big')
    chars = []
    for _ in range(26):
        chars.append(ULID_ALPHABET[value & 0x1F])
        value >>= 5
    return ''.join(reversed(chars))
