"""
Table Facade

``Table`` is the entry point for a single DynamoDB table that stores many
entity types. It owns the configuration, the store client, the schema and
models, the crypto registry, the metrics collaborator and a read-only
context, and routes every operation through one ``OperationDispatcher``.

Example:
    >>> table = Table(SingleTableConfig(name='MyApp'), schema=schema)
    >>> table.create_table()
    >>> user = table.create('User', {'name': 'alice', 'email': 'alice@example.com'})
    >>> table.find('User', {'id': user['id']})
"""

import copy
import logging
from types import MappingProxyType
from typing import Any, Callable, Dict, List, Mapping, Optional

from .config import SingleTableConfig
from .core.clients import StoreClient, create_store_client
from .core.crypto import CryptoRegistry
from .core.dispatcher import OperationDispatcher
from .core.marshalling import FormatCompat
from .core.metrics import OperationMetrics
from .core.table_definition import PRIMARY_INDEX, build_table_definition
from .exceptions import ConfigurationError
from .models import Model, Schema
from .utils import get_vars, group_by_type, make_ulid, make_uuid, merge

logger = logging.getLogger(__name__)

CONFIRM_REMOVE_TABLE = 'DeleteTableForever'

# Item conventions that may be changed with set_params() or schema params
ITEM_PARAMS = (
    'delimiter',
    'type_field',
    'created_field',
    'updated_field',
    'hidden',
    'timestamps',
    'iso_dates',
    'nulls',
    'uuid',
)


class Table:
    """Facade over one single-table design."""

    def __init__(
        self,
        config: Optional[SingleTableConfig] = None,
        *,
        client: Optional[StoreClient] = None,
        schema: Optional[Mapping[str, Any]] = None,
        crypto: Optional[Mapping[str, Any]] = None,
        metrics: Optional[OperationMetrics] = None
    ):
        """
        Initialize the table facade.

        Args:
            config: Table configuration, read from the environment if omitted
            client: Store client adapter; created lazily from config if omitted
            schema: Schema dictionary with indexes, models and params
            crypto: Crypto profiles, overriding ``config.crypto``
            metrics: Metrics collaborator recording every dispatched operation
        """
        self.config = config or SingleTableConfig.from_env()
        self.name = self.config.get_table_name()
        if not self.name:
            raise ConfigurationError("Missing table name", 'name')

        if self.config.enable_debug_logging:
            logging.getLogger(__package__).setLevel(logging.DEBUG)

        self._client: Optional[StoreClient] = None
        self._format: Optional[FormatCompat] = None
        if client is not None:
            self.set_client(client)

        self.metrics = metrics
        self.crypto = CryptoRegistry()
        self.init_crypto(crypto if crypto is not None else self.config.crypto)

        self._context: Mapping[str, Any] = MappingProxyType({})
        self._make_id: Callable[[], str] = make_uuid
        self.params: Dict[str, Any] = {}
        self.set_params(self.config.model_dump(include=set(ITEM_PARAMS)))

        self.dispatcher = OperationDispatcher(self)
        self.schema = Schema(self, schema)

    def __repr__(self) -> str:
        return f"Table(name={self.name!r}, models={self.list_models()!r})"

    # -------------------------------------------------------------------------
    # Client and params
    # -------------------------------------------------------------------------

    @property
    def client(self) -> StoreClient:
        """Store client adapter, created on first use."""
        if self._client is None:
            self.set_client(create_store_client(self.config))
        return self._client

    @property
    def format(self) -> FormatCompat:
        if self._format is None:
            self.set_client(self.client)
        return self._format

    def set_client(self, client: StoreClient) -> 'Table':
        self._client = client
        self._format = FormatCompat(client)
        return self

    def set_params(self, params: Mapping[str, Any]) -> None:
        """
        Update item conventions.

        Args:
            params: Any of ``delimiter``, ``type_field``, ``created_field``,
                ``updated_field``, ``hidden``, ``timestamps``, ``iso_dates``,
                ``nulls`` and ``uuid`` ("uuid" or "ulid"). Other keys are kept
                in ``self.params`` but have no effect.
        """
        generator = params.get('uuid')
        if generator not in (None, 'uuid', 'ulid'):
            raise ConfigurationError(f'Unknown ID generator "{generator}"', 'uuid')

        self.params = {**self.params, **params}
        self.delimiter = self.params.get('delimiter', '#')
        self.type_field = self.params.get('type_field', '_type')
        self.created_field = self.params.get('created_field', 'created')
        self.updated_field = self.params.get('updated_field', 'updated')
        self.hidden = self.params.get('hidden', True)
        self.timestamps = self.params.get('timestamps', False)
        self.iso_dates = self.params.get('iso_dates', False)
        self.nulls = self.params.get('nulls', False)

        if generator == 'uuid':
            self._make_id = self.uuid
        elif generator == 'ulid':
            self._make_id = self.ulid

    def get_params(self) -> Dict[str, Any]:
        return {
            'delimiter': self.delimiter,
            'type_field': self.type_field,
            'created_field': self.created_field,
            'updated_field': self.updated_field,
            'hidden': self.hidden,
            'timestamps': self.timestamps,
            'iso_dates': self.iso_dates,
            'nulls': self.nulls,
            'uuid': self.params.get('uuid', 'uuid'),
        }

    # -------------------------------------------------------------------------
    # Schema
    # -------------------------------------------------------------------------

    def set_schema(self, schema: Optional[Mapping[str, Any]]):
        return self.schema.set_schema(schema)

    def get_current_schema(self) -> Optional[Dict[str, Any]]:
        return self.schema.get_current_schema()

    def get_keys(self) -> Dict[str, Dict[str, Any]]:
        return self.schema.get_keys()

    def get_primary_keys(self) -> Dict[str, Any]:
        return self.schema.get_keys()[PRIMARY_INDEX]

    def list_models(self) -> List[str]:
        return self.schema.list_models()

    def add_model(self, name: str, fields: Mapping[str, Any]) -> Model:
        return self.schema.add_model(name, fields)

    def get_model(self, name: str) -> Model:
        """Return the named model. Raises ConfigurationError if it is not defined."""
        return self.schema.get_model(name)

    def remove_model(self, name: str) -> None:
        self.schema.remove_model(name)

    # -------------------------------------------------------------------------
    # Table management
    # -------------------------------------------------------------------------

    def create_table(self, provisioned: Optional[Dict[str, int]] = None) -> Dict[str, Any]:
        """
        Create the DynamoDB table from the current schema's indexes.

        Args:
            provisioned: Optional ProvisionedThroughput; on-demand billing if omitted

        Returns:
            The store's create_table response
        """
        definition = build_table_definition(self.name, self.schema.indexes, provisioned)
        logger.info(f"Creating table {self.name}")
        return self.dispatcher.invoke('create_table', definition)

    def delete_table(self, confirmation: str) -> Dict[str, Any]:
        """Delete the table forever. ``confirmation`` must be ``CONFIRM_REMOVE_TABLE``."""
        if confirmation != CONFIRM_REMOVE_TABLE:
            raise ConfigurationError(f'Missing required confirmation "{CONFIRM_REMOVE_TABLE}"', 'confirmation')
        logger.warning(f"Deleting table {self.name}")
        return self.dispatcher.invoke('delete_table', {'TableName': self.name})

    def describe_table(self) -> Dict[str, Any]:
        return self.dispatcher.invoke('describe_table', {'TableName': self.name})

    def list_tables(self) -> List[str]:
        result = self.dispatcher.invoke('list_tables', {})
        return result.get('TableNames', [])

    def exists(self) -> bool:
        return self.name in self.list_tables()

    # -------------------------------------------------------------------------
    # Context
    # -------------------------------------------------------------------------

    def get_context(self) -> Mapping[str, Any]:
        return self._context

    def add_context(self, context: Optional[Mapping[str, Any]] = None) -> 'Table':
        self._context = MappingProxyType({**self._context, **(context or {})})
        return self

    def set_context(self, context: Optional[Mapping[str, Any]] = None, merge: bool = False) -> 'Table':
        base = dict(self._context) if merge else {}
        base.update(context or {})
        self._context = MappingProxyType(base)
        return self

    def clear_context(self) -> 'Table':
        self._context = MappingProxyType({})
        return self

    def child(self, context: Optional[Mapping[str, Any]] = None) -> 'Table':
        """
        Return a table holding its own context.

        The child starts with this table's client, crypto, metrics, params and
        indexes. Its models are bound to the child, so model operations run
        through the child's dispatcher and see later changes to its metrics,
        params or client.
        """
        table = copy.copy(self)
        table._context = MappingProxyType(dict(context or {}))
        table.dispatcher = OperationDispatcher(table)
        table.schema = self.schema.bind(table)
        return table

    # -------------------------------------------------------------------------
    # Model factory API (model name first)
    # -------------------------------------------------------------------------

    def create(self, model_name: str, properties: Dict[str, Any], params: Optional[Dict[str, Any]] = None):
        return self.get_model(model_name).create(properties, self._with_context(params))

    def find(self, model_name: str, properties: Optional[Dict[str, Any]] = None, params: Optional[Dict[str, Any]] = None):
        return self.get_model(model_name).find(properties, self._with_context(params))

    def get(self, model_name: str, properties: Dict[str, Any], params: Optional[Dict[str, Any]] = None):
        return self.get_model(model_name).get(properties, self._with_context(params))

    def remove(self, model_name: str, properties: Dict[str, Any], params: Optional[Dict[str, Any]] = None):
        return self.get_model(model_name).remove(properties, self._with_context(params))

    def scan(self, model_name: str, properties: Optional[Dict[str, Any]] = None, params: Optional[Dict[str, Any]] = None):
        return self.get_model(model_name).scan(properties, self._with_context(params))

    def update(self, model_name: str, properties: Dict[str, Any], params: Optional[Dict[str, Any]] = None):
        return self.get_model(model_name).update(properties, self._with_context(params))

    # -------------------------------------------------------------------------
    # Low-level item API (no model fields)
    # -------------------------------------------------------------------------

    def delete_item(self, properties: Dict[str, Any], params: Optional[Dict[str, Any]] = None):
        return self.schema.generic_model.delete_item(properties, self._with_context(params))

    def get_item(self, properties: Dict[str, Any], params: Optional[Dict[str, Any]] = None):
        return self.schema.generic_model.get_item(properties, self._with_context(params))

    def put_item(self, properties: Dict[str, Any], params: Optional[Dict[str, Any]] = None):
        return self.schema.generic_model.put_item(properties, self._with_context(params))

    def query_items(self, properties: Dict[str, Any], params: Optional[Dict[str, Any]] = None):
        return self.schema.generic_model.query_items(properties, self._with_context(params))

    def scan_items(self, properties: Optional[Dict[str, Any]] = None, params: Optional[Dict[str, Any]] = None):
        return self.schema.generic_model.scan_items(properties, self._with_context(params))

    def update_item(self, properties: Dict[str, Any], params: Optional[Dict[str, Any]] = None):
        return self.schema.generic_model.update_item(properties, self._with_context(params))

    def _with_context(self, params: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        return {**(params or {}), 'context': self._context}

    # -------------------------------------------------------------------------
    # Dispatch
    # -------------------------------------------------------------------------

    def execute(
        self,
        model: str,
        operation: str,
        command: Dict[str, Any],
        params: Optional[Dict[str, Any]] = None,
        properties: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        return self.dispatcher.execute(model, operation, command, params, properties)

    def batch_get(self, batch: Dict[str, Any], params: Optional[Dict[str, Any]] = None):
        return self.dispatcher.batch_get(batch, params)

    def batch_write(self, batch: Dict[str, Any], params: Optional[Dict[str, Any]] = None):
        return self.dispatcher.batch_write(batch, params)

    def transact(self, kind: str, transaction: Dict[str, Any], params: Optional[Dict[str, Any]] = None):
        """Invoke a prepared transaction. ``kind`` is "write" or "get"."""
        return self.dispatcher.transact(kind, transaction, params)

    # -------------------------------------------------------------------------
    # Utilities
    # -------------------------------------------------------------------------

    def group_by_type(self, items: List[Dict[str, Any]]) -> Dict[str, List[Dict[str, Any]]]:
        return group_by_type(items, self.type_field)

    def uuid(self) -> str:
        return make_uuid()

    def ulid(self) -> str:
        return make_ulid()

    def set_make_id(self, fn: Callable[[], str]) -> None:
        self._make_id = fn

    def make_id(self) -> str:
        return self._make_id()

    def get_vars(self, template: Any) -> List[str]:
        return get_vars(template)

    def merge(self, dest: Dict[str, Any], *sources: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
        return merge(dest, *sources)

    def init_crypto(self, profiles: Optional[Mapping[str, Any]]) -> None:
        """Install crypto profiles, replacing the current ones."""
        if profiles:
            self.crypto.install(profiles)

    def encrypt(self, text: Optional[str], name: str = 'primary') -> Optional[str]:
        return self.crypto.encrypt(text, name)

    def decrypt(self, text: Optional[str]) -> Optional[str]:
        return self.crypto.decrypt(text)

    def marshall(self, item):
        return self.format.marshall(item)

    def unmarshall(self, item):
        return self.format.unmarshall(item)
