"""
Store Client Adapters

The engine talks to DynamoDB through one of two client generations:

1. ``Boto3StoreClient`` (current generation): calls return the response
   directly, and items travel in the wire format produced by ``marshall``.
2. ``LegacyDocumentClient`` (legacy generation): a document-style client.
   Calls return a pending request (``concurrent.futures.Future``) that the
   caller resolves, items travel as native Python values, and set values must
   be wrapped with ``create_set`` because the legacy serializer does not
   accept Python sets.

Both adapters translate botocore ``ClientError`` into ``StoreError`` carrying
an explicit ``ErrorKind`` so that callers never inspect vendor error codes.
"""

import logging
from abc import ABC, abstractmethod
from concurrent.futures import Future, ThreadPoolExecutor
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

import boto3
from boto3.dynamodb.types import Binary, TypeDeserializer, TypeSerializer
from botocore.config import Config
from botocore.exceptions import ClientError

from ..config import SingleTableConfig
from ..exceptions import ConfigurationError, ErrorKind, StoreError, ValidationError

logger = logging.getLogger(__name__)


class ClientGeneration(str, Enum):
    CURRENT = "current"
    LEGACY = "legacy"


# Operation kind -> boto3 low-level client method
CLIENT_METHODS = {
    'delete': 'delete_item',
    'get': 'get_item',
    'find': 'query',
    'put': 'put_item',
    'scan': 'scan',
    'update': 'update_item',
    'batch_get': 'batch_get_item',
    'batch_write': 'batch_write_item',
    'transact_get': 'transact_get_items',
    'transact_write': 'transact_write_items',
    # Table management
    'create_table': 'create_table',
    'delete_table': 'delete_table',
    'describe_table': 'describe_table',
    'list_tables': 'list_tables',
}

_ERROR_KINDS = {
    'ConditionalCheckFailedException': ErrorKind.CONDITION_FAILED,

    'TransactionConflictException': ErrorKind.CONFLICT,
    'ResourceInUseException': ErrorKind.CONFLICT,
    'DuplicateTransactionException': ErrorKind.CONFLICT,
    'TableAlreadyExistsException': ErrorKind.CONFLICT,

    'ResourceNotFoundException': ErrorKind.NOT_FOUND,
    'TableNotFoundException': ErrorKind.NOT_FOUND,
    'IndexNotFoundException': ErrorKind.NOT_FOUND,

    'ValidationException': ErrorKind.VALIDATION,
    'ItemCollectionSizeLimitExceededException': ErrorKind.VALIDATION,
    'LimitExceededException': ErrorKind.VALIDATION,
    'IdempotentParameterMismatchException': ErrorKind.VALIDATION,

    'ProvisionedThroughputExceededException': ErrorKind.THROTTLED,
    'RequestLimitExceeded': ErrorKind.THROTTLED,
    'ThrottlingException': ErrorKind.THROTTLED,
    'TooManyRequestsException': ErrorKind.THROTTLED,

    'InternalServerError': ErrorKind.UNAVAILABLE,
    'ServiceUnavailable': ErrorKind.UNAVAILABLE,
    'ServiceUnavailableException': ErrorKind.UNAVAILABLE,
    'RequestTimeoutException': ErrorKind.UNAVAILABLE,

    'UnrecognizedClientException': ErrorKind.AUTH,
    'AccessDeniedException': ErrorKind.AUTH,
    'ExpiredTokenException': ErrorKind.AUTH,
    'InvalidSignatureException': ErrorKind.AUTH,

    'TransactionCanceledException': ErrorKind.TRANSACTION_CANCELED,
    'TransactionInProgressException': ErrorKind.TRANSACTION_CANCELED,
}


def classify_client_error(error: ClientError) -> ErrorKind:
    """Return the ErrorKind for a botocore ClientError."""
    error_code = error.response.get('Error', {}).get('Code', '')
    kind = _ERROR_KINDS.get(error_code)
    if kind is None:
        logger.warning(f"Unknown DynamoDB error code '{error_code}' classified as transport fault")
        return ErrorKind.TRANSPORT
    return kind


def store_error_from_client_error(error: ClientError, operation: str) -> StoreError:
    """Wrap a botocore ClientError into a classified StoreError.

    Args:
        error: The boto3 ClientError
        operation: The operation kind that failed (e.g. "put")

    Returns:
        StoreError tagged with its ErrorKind
    """
    error_info = error.response.get('Error', {})
    error_code = error_info.get('Code')
    error_message = error_info.get('Message', str(error))
    return StoreError(
        f'"{operation}" failed: {error_message}',
        kind=classify_client_error(error),
        operation=operation,
        code=error_code,
        original_error=error
    )


def _convert_floats(value: Any) -> Any:
    if isinstance(value, bool):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    if isinstance(value, dict):
        return {k: _convert_floats(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_convert_floats(v) for v in value]
    if isinstance(value, (set, frozenset)):
        return type(value)(_convert_floats(v) for v in value)
    if isinstance(value, LegacySet):
        return LegacySet([_convert_floats(v) for v in value.values], value.type)
    return value


def _unwrap_numbers(value: Any) -> Any:
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, dict):
        return {k: _unwrap_numbers(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_unwrap_numbers(v) for v in value]
    if isinstance(value, set):
        return {_unwrap_numbers(v) for v in value}
    return value


class StoreClient(ABC):
    """Capability interface shared by both client generations."""

    generation: ClientGeneration

    def __init__(
        self,
        client: Any,
        marshall_options: Optional[Dict[str, Any]] = None,
        unmarshall_options: Optional[Dict[str, Any]] = None
    ):
        self.client = client
        self.marshall_options = dict(marshall_options or {})
        self.unmarshall_options = dict(unmarshall_options or {})
        self._serializer = TypeSerializer()
        self._deserializer = TypeDeserializer()

    def _method(self, operation: str):
        try:
            return getattr(self.client, CLIENT_METHODS[operation])
        except KeyError:
            raise ConfigurationError(f'Unknown operation "{operation}"', 'operation') from None

    @abstractmethod
    def marshall(self, item: Dict[str, Any], options: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Convert a native item into the DynamoDB attribute-value format."""

    @abstractmethod
    def unmarshall(self, item: Dict[str, Any], options: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Convert a DynamoDB attribute-value item into native values."""

    def close(self) -> None:
        """Release resources held by the adapter."""


class Boto3StoreClient(StoreClient):
    """
    Current-generation adapter over a boto3 low-level DynamoDB client.

    Calls are made directly and return the raw response. Commands must carry
    items already in wire format (see ``marshall``).
    """

    generation = ClientGeneration.CURRENT

    def call(self, operation: str, command: Dict[str, Any]) -> Dict[str, Any]:
        """Invoke an operation and return its response."""
        method = self._method(operation)
        try:
            return method(**command)
        except ClientError as e:
            raise store_error_from_client_error(e, operation) from e

    def marshall(self, item, options=None):
        options = self.marshall_options if options is None else options
        if options.get('convert_floats'):
            item = _convert_floats(item)
        if options.get('remove_nulls'):
            item = {k: v for k, v in item.items() if v is not None}
        try:
            return {k: self._serializer.serialize(v) for k, v in item.items()}
        except TypeError as e:
            raise ValidationError(f"Cannot marshall item: {e}", original_error=e) from e

    def unmarshall(self, item, options=None):
        options = self.unmarshall_options if options is None else options
        result = {k: self._deserializer.deserialize(v) for k, v in item.items()}
        if options.get('wrap_numbers', True) is False:
            result = _unwrap_numbers(result)
        return result


class LegacySet:
    """Set wrapper understood by the legacy document client."""

    wrapper_name = "Set"

    def __init__(self, values: List[Any], set_type: str):
        self.values = list(values)
        self.type = set_type

    def __eq__(self, other):
        if not isinstance(other, LegacySet):
            return NotImplemented
        return self.type == other.type and self.values == other.values

    def __repr__(self) -> str:
        return f"LegacySet(type={self.type!r}, values={self.values!r})"


class _LegacySerializer(TypeSerializer):

    def serialize(self, value):
        if isinstance(value, LegacySet):
            if value.type == 'Number':
                return {'NS': [self._serialize_n(v) for v in value.values]}
            if value.type == 'Binary':
                return {'BS': [self._serialize_b(v) for v in value.values]}
            return {'SS': [str(v) for v in value.values]}
        if isinstance(value, (set, frozenset)):
            raise ValidationError("Legacy client requires create_set() for set values")
        return super().serialize(value)


class _LegacyDeserializer(TypeDeserializer):

    def _deserialize_b(self, value):
        return bytes(value)

    def _deserialize_ss(self, value):
        return LegacySet(value, 'String')

    def _deserialize_ns(self, value):
        return LegacySet([self._deserialize_n(v) for v in value], 'Number')

    def _deserialize_bs(self, value):
        return LegacySet([bytes(v) for v in value], 'Binary')


# Request fields holding a single attribute map / a list of attribute maps
_ITEM_FIELDS = ('Item', 'Key', 'ExpressionAttributeValues', 'ExclusiveStartKey', 'Attributes', 'LastEvaluatedKey')
_ITEM_LIST_FIELDS = ('Items', 'Keys')


class LegacyDocumentClient(StoreClient):
    """
    Legacy-generation document client.

    Accepts and returns native Python values. ``request`` submits the call to
    a thread pool and returns a Future; the dispatcher resolves it.
    """

    generation = ClientGeneration.LEGACY

    def __init__(self, client: Any, max_workers: int = 10, **kwargs):
        super().__init__(client, **kwargs)
        self._serializer = _LegacySerializer()
        self._deserializer = _LegacyDeserializer()
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="singletable-legacy")

    def create_set(self, values: List[Any]) -> LegacySet:
        """Wrap a list of values into the legacy set representation."""
        values = list(values)
        first = values[0] if values else ""
        if isinstance(first, (bytes, bytearray, Binary)):
            set_type = 'Binary'
        elif isinstance(first, (int, float, Decimal)) and not isinstance(first, bool):
            set_type = 'Number'
        else:
            set_type = 'String'
        return LegacySet(values, set_type)

    def request(self, operation: str, command: Dict[str, Any]) -> Future:
        """Submit an operation and return a pending request."""
        method = self._method(operation)
        wire = self._to_wire(command)
        return self._executor.submit(self._send, operation, method, wire)

    def _send(self, operation, method, wire):
        try:
            response = method(**wire)
        except ClientError as e:
            raise store_error_from_client_error(e, operation) from e
        return self._from_wire(response)

    def marshall(self, item, options=None):
        return {k: self._serializer.serialize(_convert_floats(v)) for k, v in item.items()}

    def unmarshall(self, item, options=None):
        return {k: self._deserializer.deserialize(v) for k, v in item.items()}

    def _to_wire(self, value):
        if isinstance(value, dict):
            out = {}
            for k, v in value.items():
                if k in _ITEM_FIELDS and isinstance(v, dict):
                    out[k] = self.marshall(v)
                elif k in _ITEM_LIST_FIELDS and isinstance(v, list):
                    out[k] = [self.marshall(item) for item in v]
                else:
                    out[k] = self._to_wire(v)
            return out
        if isinstance(value, list):
            return [self._to_wire(v) for v in value]
        return value

    def _from_wire(self, value):
        if isinstance(value, dict):
            out = {}
            for k, v in value.items():
                if k in _ITEM_FIELDS and isinstance(v, dict):
                    out[k] = self.unmarshall(v)
                elif k in _ITEM_LIST_FIELDS and isinstance(v, list):
                    out[k] = [self.unmarshall(item) for item in v]
                elif k == 'Responses' and isinstance(v, dict):
                    # batch_get_item: table name -> items
                    out[k] = {table: [self.unmarshall(item) for item in items] for table, items in v.items()}
                else:
                    out[k] = self._from_wire(v)
            return out
        if isinstance(value, list):
            return [self._from_wire(v) for v in value]
        return value

    def close(self) -> None:
        self._executor.shutdown(wait=True)


def create_store_client(config: SingleTableConfig) -> StoreClient:
    """
    Factory function to create a store client from configuration.

    Args:
        config: Table configuration

    Returns:
        Adapter matching ``config.client_generation``
    """
    try:
        session = boto3.Session(
            aws_access_key_id=config.aws_access_key_id,
            aws_secret_access_key=config.aws_secret_access_key,
            region_name=config.region_name
        )

        client_config = {
            'region_name': config.region_name
        }

        if config.endpoint_url:
            client_config['endpoint_url'] = config.endpoint_url

        client_config['config'] = Config(
            retries={'max_attempts': config.retries},
            max_pool_connections=config.max_pool_connections,
            read_timeout=config.timeout_seconds,
            connect_timeout=config.timeout_seconds
        )

        client = session.client('dynamodb', **client_config)
    except Exception as e:
        logger.error(f"Failed to create DynamoDB client: {e}")
        raise StoreError(f"Failed to connect to DynamoDB: {e}", ErrorKind.TRANSPORT, original_error=e) from e

    if config.client_generation == ClientGeneration.LEGACY.value:
        return LegacyDocumentClient(
            client,
            max_workers=config.max_pool_connections,
            marshall_options=config.marshall_options,
            unmarshall_options=config.unmarshall_options
        )
    return Boto3StoreClient(client, config.marshall_options, config.unmarshall_options)
