"""
Operation Dispatcher

Every read, write, batch and transactional call on a table goes through
``OperationDispatcher.execute``. The dispatcher:

1. Adds consumed-capacity reporting when metrics or stats are requested
2. Invokes the client with the calling convention of its generation
3. Records metrics for every completion
4. Classifies failures: suppressed, expected conflict or fault

It holds no state of its own between calls; configuration is read from the
owning table on each call.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Union

from ..exceptions import ConfigurationError, ConflictError, ErrorKind, SingleTableError, StoreError
from .clients import ClientGeneration
from .metrics import READ_WRITE

if TYPE_CHECKING:
    from ..table import Table

logger = logging.getLogger(__name__)

GENERIC_MODEL = '_Generic'
UNIQUE_MODEL = '_Unique'
UNKNOWN_TYPE = '_unknown'

# Operation kind -> DynamoDB API operation name
OPERATION_NAMES = {
    'delete': 'DeleteItem',
    'get': 'GetItem',
    'find': 'Query',
    'put': 'PutItem',
    'scan': 'Scan',
    'update': 'UpdateItem',
    'batch_get': 'BatchGetItem',
    'batch_write': 'BatchWriteItem',
    'transact_get': 'TransactGetItems',
    'transact_write': 'TransactWriteItems',
}


@dataclass
class OperationTrace:
    """Transient record of one dispatched operation."""

    model: str
    operation: str
    command: Dict[str, Any]
    properties: Dict[str, Any] = field(default_factory=dict)
    error: Optional[BaseException] = None

    @property
    def failed(self) -> bool:
        return self.error is not None

    def fail(self, error: BaseException) -> None:
        self.error = error

    def as_dict(self) -> Dict[str, Any]:
        trace = {
            'model': self.model,
            'operation': self.operation,
            'command': self.command,
            'properties': self.properties,
        }
        if self.error is not None:
            trace['error'] = repr(self.error)
        return trace


class OperationDispatcher:
    """Single choke point for executing table operations."""

    def __init__(self, table: 'Table'):
        self.table = table

    def invoke(self, operation: str, command: Dict[str, Any]) -> Dict[str, Any]:
        """
        Call the client for one operation and return the response.

        Current-generation clients answer directly. Legacy clients return a
        pending request that is resolved here.
        """
        client = self.table.client
        if client.generation is ClientGeneration.LEGACY:
            return client.request(operation, command).result()
        return client.call(operation, command)

    def execute(
        self,
        model: str,
        operation: str,
        command: Dict[str, Any],
        params: Optional[Dict[str, Any]] = None,
        properties: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """
        Execute one operation for a model.

        Args:
            model: Name of the model the operation runs for
            operation: One of get, put, update, delete, find, scan, batch_get,
                batch_write, transact_get, transact_write
            command: boto3 request parameters, sent as given
            params: Per-call options:
                - stats: request consumed capacity (a dict also receives totals)
                - capacity: ReturnConsumedCapacity value (default INDEXES)
                - log: True logs the trace at INFO; False silences error logging
                - throw: False returns {} instead of raising
                - info: dict receiving operation, args and properties
            properties: The caller's original properties, for tracing

        Returns:
            The store's response, or {} when a failure is suppressed

        Raises:
            ConflictError: A conditional put failed
            StoreError: Any other store fault, unchanged
        """
        if operation not in OPERATION_NAMES:
            raise ConfigurationError(f'Unknown operation "{operation}"', 'operation')
        params = params if params is not None else {}
        properties = properties if properties is not None else {}
        metrics = self.table.metrics

        mark = time.monotonic()
        trace = OperationTrace(model, operation, command, properties)

        if params.get('stats') or metrics:
            command['ReturnConsumedCapacity'] = params.get('capacity') or 'INDEXES'
            if READ_WRITE[operation] == 'write':
                command['ReturnItemCollectionMetrics'] = 'SIZE'

        log = logger.info if params.get('log') else logger.debug
        log(f'"{operation}" "{model}": {trace.as_dict()}')

        try:
            result = self.invoke(operation, command)
        except Exception as err:
            trace.fail(err)
            if metrics:
                metrics.add(model, operation, {'Error': 1}, params, mark)

            if params.get('throw') is False:
                logger.debug(f'Suppressed exception in "{operation}" on "{model}": {err}')
                result = {}

            elif isinstance(err, StoreError) and err.kind is ErrorKind.CONDITION_FAILED and operation == 'put':
                # Expected when enforcing uniqueness
                logger.info(f'Conditional check failed "{operation}" on "{model}": {trace.as_dict()}')
                raise ConflictError(model, operation, original_error=err) from err

            else:
                if isinstance(err, SingleTableError):
                    err.add_context('model', model)
                if params.get('log') is not False:
                    logger.error(f'Exception in "{operation}" on "{model}": {err}. Trace: {trace.as_dict()}')
                raise
        else:
            if metrics:
                metrics.add(model, operation, result, params, mark)

        info = params.get('info')
        if isinstance(info, dict):
            info['operation'] = OPERATION_NAMES[operation]
            info['args'] = command
            info['properties'] = properties
        return result

    def batch_get(self, batch: Dict[str, Any], params: Optional[Dict[str, Any]] = None) -> Union[Dict[str, Any], List[Any]]:
        """
        Execute BatchGetItem.

        An empty batch returns [] without calling the store. ``params['consistent']``
        sets ConsistentRead on every table request. With ``params['parse']``
        the result is a list of model items resolved through the type field.
        """
        params = params if params is not None else {}
        request_items = (batch or {}).get('RequestItems')
        if not request_items:
            return []
        consistent = bool(params.get('consistent'))
        for request in request_items.values():
            request['ConsistentRead'] = consistent

        result = self.execute(GENERIC_MODEL, 'batch_get', batch, params)

        responses = result.get('Responses')
        if params.get('parse') and responses:
            items = []
            for table_items in responses.values():
                for item in table_items:
                    parsed = self._resolve(item, params)
                    if parsed is not None:
                        items.append(parsed)
            return items
        return result

    def batch_write(self, batch: Dict[str, Any], params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Execute BatchWriteItem. An empty batch returns {} without calling the store."""
        if not batch or not batch.get('RequestItems'):
            return {}
        return self.execute(GENERIC_MODEL, 'batch_write', batch, params)

    def transact(self, kind: str, transaction: Dict[str, Any], params: Optional[Dict[str, Any]] = None):
        """
        Execute a prepared transaction.

        ``kind`` "write" runs TransactWriteItems, anything else TransactGetItems.
        Parsed reads return resolved model items, dropping unknown types and
        uniqueness markers. Note: TransactGetItems only works on the primary index.
        """
        params = params if params is not None else {}
        operation = 'transact_write' if kind == 'write' else 'transact_get'
        result = self.execute(GENERIC_MODEL, operation, transaction, params)

        if operation == 'transact_get' and params.get('parse'):
            items = []
            for response in result.get('Responses', []):
                if response.get('Item'):
                    parsed = self._resolve(response['Item'], params)
                    if parsed is not None:
                        items.append(parsed)
            return items
        return result

    def _resolve(self, item: Dict[str, Any], params: Dict[str, Any]):
        table = self.table
        item = table.unmarshall(item)
        type_name = item.get(table.type_field) or UNKNOWN_TYPE
        model = table.schema.models.get(type_name)
        if model is None or model is table.schema.unique_model:
            return None
        return model.transform_read_item('get', item, {}, params)
