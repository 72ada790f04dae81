"""
Physical table definitions derived from schema index declarations.

A schema declares a mandatory ``primary`` index plus secondary indexes. A
secondary index without a hash attribute, or sharing the primary hash, is a
Local Secondary Index; any other is a Global Secondary Index.
"""

import logging
from typing import Any, Dict, List, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict

from ..exceptions import ConfigurationError

logger = logging.getLogger(__name__)

PRIMARY_INDEX = 'primary'


class IndexDefinition(BaseModel):
    """Declared index: hash/sort attribute names and projection policy.

    ``project`` is ``None`` or ``"all"`` for every attribute, ``"keys"`` for
    keys only, or a list of extra attribute names to include.
    """

    name: str
    hash: Optional[str] = None
    sort: Optional[str] = None
    project: Optional[Union[str, List[str]]] = None

    model_config = ConfigDict(frozen=True)

    @property
    def has_projection(self) -> bool:
        return self.project is not None and self.project != 'all'

    def projection(self) -> Dict[str, Any]:
        if isinstance(self.project, list):
            return {'ProjectionType': 'INCLUDE', 'NonKeyAttributes': list(self.project)}
        if self.project == 'keys':
            return {'ProjectionType': 'KEYS_ONLY'}
        return {'ProjectionType': 'ALL'}


def parse_indexes(indexes: Mapping[str, Any]) -> Dict[str, IndexDefinition]:
    """Build IndexDefinitions from a schema ``indexes`` mapping."""
    result = {}
    for name, index in indexes.items():
        if isinstance(index, IndexDefinition):
            result[name] = index
        else:
            result[name] = IndexDefinition(name=name, **index)
    if PRIMARY_INDEX not in result:
        raise ConfigurationError('Schema must define a "primary" index', 'indexes')
    if not result[PRIMARY_INDEX].hash:
        raise ConfigurationError('The "primary" index must define a hash attribute', 'indexes')
    return result


def is_local_index(index: IndexDefinition, primary: IndexDefinition) -> bool:
    return index.hash is None or index.hash == primary.hash


def build_table_definition(
    table_name: str,
    indexes: Mapping[str, IndexDefinition],
    provisioned: Optional[Dict[str, int]] = None
) -> Dict[str, Any]:
    """
    Build ``create_table`` parameters from index definitions.

    Args:
        table_name: Physical table name
        indexes: Index name -> IndexDefinition, including ``primary``
        provisioned: Optional ProvisionedThroughput, e.g.
            ``{'ReadCapacityUnits': 5, 'WriteCapacityUnits': 5}``

    Returns:
        Dictionary ready for ``client.create_table(**definition)``

    Raises:
        ConfigurationError: Missing primary index, or a local index declaring
            a projection
    """
    primary = indexes.get(PRIMARY_INDEX)
    if primary is None or not primary.hash:
        raise ConfigurationError('Schema must define a "primary" index with a hash attribute', 'indexes')

    attribute_definitions: List[Dict[str, str]] = []
    key_schema: List[Dict[str, str]] = []
    local_indexes: List[Dict[str, Any]] = []
    global_indexes: List[Dict[str, Any]] = []
    defined = set()

    def define(attribute: str) -> None:
        if attribute not in defined:
            attribute_definitions.append({'AttributeName': attribute, 'AttributeType': 'S'})
            defined.add(attribute)

    for name, index in indexes.items():
        if name == PRIMARY_INDEX:
            keys = key_schema
        else:
            keys = []
            if is_local_index(index, primary):
                if index.has_projection:
                    raise ConfigurationError(f'Unwanted projection for local secondary index "{name}"', 'indexes')
                collection = local_indexes
            else:
                collection = global_indexes
            collection.append({
                'IndexName': name,
                'KeySchema': keys,
                'Projection': index.projection(),
            })

        hash_attribute = index.hash or primary.hash
        keys.append({'AttributeName': hash_attribute, 'KeyType': 'HASH'})
        define(hash_attribute)

        if index.sort:
            define(index.sort)
            keys.append({'AttributeName': index.sort, 'KeyType': 'RANGE'})

    definition: Dict[str, Any] = {
        'AttributeDefinitions': attribute_definitions,
        'KeySchema': key_schema,
    }
    # DynamoDB rejects empty index lists
    if local_indexes:
        definition['LocalSecondaryIndexes'] = local_indexes
    if global_indexes:
        if provisioned:
            for index in global_indexes:
                index['ProvisionedThroughput'] = dict(provisioned)
        definition['GlobalSecondaryIndexes'] = global_indexes
    definition['TableName'] = table_name

    if provisioned:
        definition['BillingMode'] = 'PROVISIONED'
        definition['ProvisionedThroughput'] = dict(provisioned)
    else:
        definition['BillingMode'] = 'PAY_PER_REQUEST'

    logger.debug(f"Table definition for {table_name}: {definition}")
    return definition
