"""
Format compatibility between application items and the active client generation.

Current generation: items are converted to and from the DynamoDB
attribute-value format by the client's own marshaller.

Legacy generation: the document client converts everything except sets, so
only set values are touched here. Outgoing sets are wrapped with the client's
``create_set``; incoming set wrappers become Python sets again, with binary
members widened to ``Binary`` so both generations read back identical values.
"""

from typing import Any, Dict, List, Union

from boto3.dynamodb.types import Binary

from .clients import ClientGeneration, StoreClient

Item = Dict[str, Any]


def is_legacy_set(value: Any) -> bool:
    """Return True for the legacy client's tagged set wrapper."""
    return getattr(value, 'wrapper_name', None) == 'Set' and isinstance(getattr(value, 'values', None), list)


class FormatCompat:
    """Marshall and unmarshall items for whichever client generation is active."""

    def __init__(self, client: StoreClient):
        self.client = client

    @property
    def legacy(self) -> bool:
        return self.client.generation is ClientGeneration.LEGACY

    def marshall(self, item: Union[Item, List[Item]]) -> Union[Item, List[Item]]:
        convert = self._marshall_legacy if self.legacy else self.client.marshall
        if isinstance(item, list):
            return [convert(i) for i in item]
        return convert(item)

    def unmarshall(self, item: Union[Item, List[Item]]) -> Union[Item, List[Item]]:
        convert = self._unmarshall_legacy if self.legacy else self.client.unmarshall
        if isinstance(item, list):
            return [convert(i) for i in item]
        return convert(item)

    def _marshall_legacy(self, item: Item) -> Item:
        result = {}
        for key, value in item.items():
            if isinstance(value, (set, frozenset)):
                value = self.client.create_set(list(value))
            result[key] = value
        return result

    def _unmarshall_legacy(self, item: Item) -> Item:
        result = {}
        for key, value in item.items():
            if is_legacy_set(value):
                values = value.values
                if getattr(value, 'type', None) == 'Binary':
                    values = [v if isinstance(v, Binary) else Binary(bytes(v)) for v in values]
                value = set(values)
            result[key] = value
        return result
