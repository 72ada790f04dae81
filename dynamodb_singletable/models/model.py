"""
Model

A Model maps one entity type onto the shared table. It shapes items on the
way out (context values, value templates, generated IDs, timestamps,
encryption) and on the way back (decryption, hidden attributes, dates), and
builds the boto3 commands that the table's dispatcher executes.

The reserved ``_Generic`` model has no fields: it reads and writes raw
attributes and backs the table's low-level item API.
"""

import copy
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic import ValidationError as PydanticValidationError

from ..core.table_definition import PRIMARY_INDEX, IndexDefinition
from ..exceptions import ConfigurationError, ValidationError
from ..utils import expand_template, template_prefix

if TYPE_CHECKING:
    from ..table import Table

logger = logging.getLogger(__name__)

FIELD_TYPES = ('string', 'number', 'boolean', 'date', 'set', 'array', 'object', 'binary')


class FieldDefinition(BaseModel):
    """Declared model field.

    ``value`` is a template such as ``"user#${id}"`` computed from context and
    properties. ``generate`` is ``"uuid"``, ``"ulid"`` or ``True`` for the
    table's configured ID generator.
    """

    type: str = 'string'
    value: Optional[str] = None
    crypt: bool = False
    generate: Optional[Union[bool, str]] = None
    hidden: Optional[bool] = None
    required: bool = False
    default: Any = None

    model_config = ConfigDict(frozen=True, extra='forbid')

    @field_validator('type')
    @classmethod
    def validate_type(cls, v):
        if v not in FIELD_TYPES:
            raise ValueError(f"Field type must be one of: {list(FIELD_TYPES)}")
        return v

    @field_validator('generate')
    @classmethod
    def validate_generate(cls, v):
        if v not in (None, True, False, 'uuid', 'ulid'):
            raise ValueError("generate must be true, 'uuid' or 'ulid'")
        return v


_DATE_FIELD = FieldDefinition(type='date')


class Model:
    """Entity type stored in the single table."""

    def __init__(self, table: 'Table', name: str, fields: Optional[Mapping[str, Any]] = None, generic: bool = False):
        self.table = table
        self.name = name
        self.generic = generic
        self.fields: Dict[str, FieldDefinition] = {}
        for field_name, definition in (fields or {}).items():
            if isinstance(definition, FieldDefinition):
                self.fields[field_name] = definition
                continue
            try:
                self.fields[field_name] = FieldDefinition(**(definition or {}))
            except PydanticValidationError as e:
                raise ValidationError(
                    f'Invalid field "{field_name}" for model "{name}"',
                    errors={field_name: e.errors()},
                    original_error=e
                ) from e

    def __repr__(self) -> str:
        return f"Model(name={self.name!r}, fields={sorted(self.fields)!r})"

    def bind(self, table: 'Table') -> 'Model':
        """Return this model running on another table facade."""
        model = copy.copy(self)
        model.table = table
        return model

    @property
    def indexes(self) -> Dict[str, IndexDefinition]:
        return self.table.schema.indexes

    @property
    def primary(self) -> IndexDefinition:
        return self.indexes[PRIMARY_INDEX]

    # -------------------------------------------------------------------------
    # Model API
    # -------------------------------------------------------------------------

    def create(self, properties: Dict[str, Any], params: Optional[Dict[str, Any]] = None) -> Optional[Dict[str, Any]]:
        """Create an item, failing with ConflictError if its primary key exists."""
        return self._put(properties, params, unique=True)

    def get(self, properties: Dict[str, Any], params: Optional[Dict[str, Any]] = None) -> Optional[Dict[str, Any]]:
        """Get an item by primary key. Returns None if it does not exist."""
        params = params if params is not None else {}
        table = self.table
        key = self._key(properties, params)
        command = {
            'TableName': table.name,
            'Key': table.marshall(key),
        }
        if params.get('consistent'):
            command['ConsistentRead'] = True

        result = table.execute(self.name, 'get', command, params, properties)
        item = result.get('Item')
        if not item:
            return None
        return self.transform_read_item('get', table.unmarshall(item), properties, params)

    def update(self, properties: Dict[str, Any], params: Optional[Dict[str, Any]] = None) -> Optional[Dict[str, Any]]:
        """
        Update attributes of an existing item.

        The item must already exist unless ``params['exists']`` is False.

        Returns:
            The updated item, or None when a failure was suppressed
        """
        params = params if params is not None else {}
        table = self.table
        key = self._key(properties, params)
        item = self._prepare('update', properties, params)
        for attribute in key:
            item.pop(attribute, None)

        names: Dict[str, str] = {}
        values: Dict[str, Any] = {}
        clauses = []
        for i, (name, value) in enumerate(item.items()):
            names[f'#_{i}'] = name
            values[f':_{i}'] = value
            clauses.append(f'#_{i} = :_{i}')
        if not clauses:
            raise ValidationError(f'Nothing to update for "{self.name}"')

        command = {
            'TableName': table.name,
            'Key': table.marshall(key),
            'UpdateExpression': 'SET ' + ', '.join(clauses),
            'ExpressionAttributeNames': names,
            'ExpressionAttributeValues': table.marshall(values),
            'ReturnValues': 'ALL_NEW',
        }
        if params.get('exists', True) is not False:
            names['#_pk'] = self.primary.hash
            command['ConditionExpression'] = 'attribute_exists(#_pk)'

        result = table.execute(self.name, 'update', command, params, properties)
        attributes = result.get('Attributes')
        if not attributes:
            return None
        return self.transform_read_item('update', table.unmarshall(attributes), properties, params)

    def remove(self, properties: Dict[str, Any], params: Optional[Dict[str, Any]] = None) -> Optional[Dict[str, Any]]:
        """Delete an item by primary key and return its old attributes."""
        params = params if params is not None else {}
        table = self.table
        command = {
            'TableName': table.name,
            'Key': table.marshall(self._key(properties, params)),
            'ReturnValues': 'ALL_OLD',
        }
        result = table.execute(self.name, 'delete', command, params, properties)
        attributes = result.get('Attributes')
        if not attributes:
            return None
        return self.transform_read_item('delete', table.unmarshall(attributes), properties, params)

    def find(self, properties: Optional[Dict[str, Any]] = None, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """
        Query items on an index.

        The hash value is required. A sort value whose template cannot be
        fully expanded becomes a ``begins_with`` prefix.

        Args:
            properties: Attribute values used to compute the key condition
            params: Options: ``index`` (default "primary"), ``limit``,
                ``reverse``, ``consistent``, plus dispatcher options
        """
        properties = properties or {}
        params = params if params is not None else {}
        table = self.table

        index_name = params.get('index', PRIMARY_INDEX)
        index = self.indexes.get(index_name)
        if index is None:
            raise ConfigurationError(f'Cannot find index "{index_name}"', 'index')

        values = self._template_values(properties, params)
        hash_attribute = index.hash or self.primary.hash
        hash_value = self._attribute_value(hash_attribute, values)
        if hash_value is None:
            raise ValidationError(f'Missing hash key value "{hash_attribute}" to find "{self.name}"')

        names = {'#_0': hash_attribute}
        expression_values = {':_0': hash_value}
        conditions = ['#_0 = :_0']

        if index.sort:
            field = self.fields.get(index.sort)
            sort_value = self._attribute_value(index.sort, values)
            if sort_value is not None:
                conditions.append('#_1 = :_1')
            elif field is not None and field.value:
                sort_value = template_prefix(field.value, values)
                if sort_value:
                    conditions.append('begins_with(#_1, :_1)')
            if sort_value:
                names['#_1'] = index.sort
                expression_values[':_1'] = sort_value

        command = {
            'TableName': table.name,
            'KeyConditionExpression': ' and '.join(conditions),
            'ExpressionAttributeNames': names,
        }
        if index_name != PRIMARY_INDEX:
            command['IndexName'] = index_name
        self._add_type_filter(command, names, expression_values)
        command['ExpressionAttributeValues'] = table.marshall(expression_values)
        self._add_read_options(command, params)
        if params.get('reverse'):
            command['ScanIndexForward'] = False

        result = table.execute(self.name, 'find', command, params, properties)
        return self._parse_items('find', result, properties, params)

    def scan(self, properties: Optional[Dict[str, Any]] = None, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """Scan the table, keeping items of this model that match properties."""
        properties = properties or {}
        params = params if params is not None else {}
        table = self.table

        command: Dict[str, Any] = {'TableName': table.name}
        if params.get('index'):
            command['IndexName'] = params['index']

        names: Dict[str, str] = {}
        expression_values: Dict[str, Any] = {}
        filters = []
        for i, (name, value) in enumerate(properties.items()):
            if value is None:
                continue
            names[f'#_{i}'] = name
            expression_values[f':_{i}'] = value
            filters.append(f'#_{i} = :_{i}')
        if filters:
            command['FilterExpression'] = ' and '.join(filters)
            command['ExpressionAttributeNames'] = names
        self._add_type_filter(command, names, expression_values)
        if expression_values:
            command['ExpressionAttributeValues'] = table.marshall(expression_values)
        self._add_read_options(command, params)

        result = table.execute(self.name, 'scan', command, params, properties)
        return self._parse_items('scan', result, properties, params)

    # Low-level item API, used through the generic model

    def get_item(self, properties, params=None):
        return self.get(properties, params)

    def put_item(self, properties, params=None):
        return self._put(properties, params, unique=False)

    def delete_item(self, properties, params=None):
        return self.remove(properties, params)

    def update_item(self, properties, params=None):
        return self.update(properties, params)

    def query_items(self, properties=None, params=None):
        return self.find(properties, params)

    def scan_items(self, properties=None, params=None):
        return self.scan(properties, params)

    # -------------------------------------------------------------------------
    # Item shaping
    # -------------------------------------------------------------------------

    def transform_read_item(
        self,
        operation: str,
        item: Optional[Dict[str, Any]],
        properties: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None
    ) -> Optional[Dict[str, Any]]:
        """
        Convert a stored item into the value returned to the caller.

        Decrypts ``crypt`` fields, restores date fields and drops hidden
        attributes (template-valued fields by default) unless
        ``params['hidden']`` is True. Typed models also drop attributes they
        do not declare.
        """
        if not item or self.generic:
            return item
        params = params or {}
        table = self.table
        show_hidden = params.get('hidden') is True

        result = {}
        for name, value in item.items():
            if name == table.type_field:
                result[name] = value
                continue
            field = self._field(name)
            if field is None:
                continue
            hidden = field.hidden if field.hidden is not None else (field.value is not None and table.hidden)
            if hidden and not show_hidden:
                continue
            if field.crypt and isinstance(value, str):
                value = table.decrypt(value)
            elif field.type == 'date':
                value = self._read_date(value)
            result[name] = value
        return result

    def _field(self, name: str) -> Optional[FieldDefinition]:
        field = self.fields.get(name)
        if field is None and self.table.timestamps and name in (self.table.created_field, self.table.updated_field):
            return _DATE_FIELD
        return field

    def _put(self, properties: Dict[str, Any], params: Optional[Dict[str, Any]], unique: bool):
        params = params if params is not None else {}
        table = self.table
        item = self._prepare('put', properties, params)
        if item.get(self.primary.hash) is None:
            raise ValidationError(f'Missing primary key "{self.primary.hash}" for "{self.name}"')

        command = {
            'TableName': table.name,
            'Item': table.marshall(item),
        }
        if unique:
            command['ConditionExpression'] = 'attribute_not_exists(#_pk)'
            command['ExpressionAttributeNames'] = {'#_pk': self.primary.hash}

        result = table.execute(self.name, 'put', command, params, properties)
        if not result:
            return None
        return self.transform_read_item('put', item, properties, params)

    def _prepare(self, operation: str, properties: Dict[str, Any], params: Dict[str, Any]) -> Dict[str, Any]:
        """Build the item to write from properties, context and field rules."""
        table = self.table
        context = self._context(params)

        if self.generic:
            item = dict(properties)
        else:
            item = {}
            for name, field in self.fields.items():
                if name in properties:
                    value = properties[name]
                else:
                    value = context.get(name)
                if value is None and operation == 'put':
                    if field.generate:
                        value = self._generate(field.generate)
                    elif field.default is not None:
                        value = copy.deepcopy(field.default)
                if value is not None or name in properties:
                    item[name] = value

            values = self._template_values(item, params)
            for name, field in self.fields.items():
                if field.value is not None:
                    expanded = expand_template(field.value, values)
                    if expanded is not None:
                        item[name] = expanded
            item[table.type_field] = self.name

            if operation == 'put':
                missing = [name for name, field in self.fields.items() if field.required and item.get(name) is None]
                if missing:
                    raise ValidationError(
                        f'Missing required fields for "{self.name}"',
                        errors={name: 'required' for name in missing}
                    )

            if table.timestamps:
                now = datetime.now(timezone.utc)
                if operation == 'put':
                    item.setdefault(table.created_field, now)
                item[table.updated_field] = now

        result = {}
        for name, value in item.items():
            if value is None and not table.nulls:
                continue
            if isinstance(value, datetime):
                value = self._write_date(value)
            field = self.fields.get(name)
            if field is not None and field.crypt and isinstance(value, str):
                value = table.encrypt(value)
            result[name] = value
        return result

    def _key(self, properties: Dict[str, Any], params: Dict[str, Any]) -> Dict[str, Any]:
        values = self._template_values(properties, params)
        key = {}
        for attribute in (self.primary.hash, self.primary.sort):
            if attribute is None:
                continue
            value = self._attribute_value(attribute, values)
            if value is None:
                raise ValidationError(f'Missing key attribute "{attribute}" for "{self.name}"')
            key[attribute] = value
        return key

    def _context(self, params: Dict[str, Any]) -> Mapping[str, Any]:
        # A child table passes its own context with each call
        context = params.get('context')
        return context if context is not None else self.table.get_context()

    def _template_values(self, properties: Mapping[str, Any], params: Dict[str, Any]) -> Dict[str, Any]:
        values = dict(self._context(params))
        values.update({k: v for k, v in properties.items() if v is not None})
        if not self.generic:
            values[self.table.type_field] = self.name
        return values

    def _attribute_value(self, attribute: str, values: Mapping[str, Any]) -> Any:
        field = self.fields.get(attribute)
        if field is not None and field.value is not None:
            expanded = expand_template(field.value, values)
            if expanded is not None:
                return expanded
        return values.get(attribute)

    def _add_type_filter(self, command: Dict[str, Any], names: Dict[str, str], values: Dict[str, Any]) -> None:
        if self.generic:
            return
        names['#_type'] = self.table.type_field
        values[':_type'] = self.name
        expression = '#_type = :_type'
        if command.get('FilterExpression'):
            expression = f"{command['FilterExpression']} and {expression}"
        command['FilterExpression'] = expression
        command['ExpressionAttributeNames'] = names

    @staticmethod
    def _add_read_options(command: Dict[str, Any], params: Dict[str, Any]) -> None:
        if params.get('limit'):
            command['Limit'] = params['limit']
        if params.get('consistent'):
            command['ConsistentRead'] = True

    def _parse_items(self, operation, result, properties, params) -> List[Dict[str, Any]]:
        items = []
        for item in result.get('Items', []):
            items.append(self.transform_read_item(operation, self.table.unmarshall(item), properties, params))
        return items

    def _generate(self, kind: Union[bool, str]) -> str:
        if kind == 'uuid':
            return self.table.uuid()
        if kind == 'ulid':
            return self.table.ulid()
        return self.table.make_id()

    def _write_date(self, value: datetime) -> Union[str, int]:
        if self.table.iso_dates:
            return value.isoformat()
        return int(value.timestamp() * 1000)

    @staticmethod
    def _read_date(value: Any) -> Any:
        if isinstance(value, str):
            try:
                return datetime.fromisoformat(value.replace('Z', '+00:00'))
            except ValueError:
                return value
        if isinstance(value, (int, Decimal)) and not isinstance(value, bool):
            return datetime.fromtimestamp(int(value) / 1000, tz=timezone.utc)
        return value
