"""
Schema

Holds the index declarations and models of one table. A schema is a plain
dictionary, validated with pydantic:

    {
        "version": "0.0.1",
        "indexes": {
            "primary": {"hash": "pk", "sort": "sk"},
            "gs1": {"hash": "gs1pk", "sort": "gs1sk", "project": "keys"}
        },
        "models": {
            "User": {
                "pk": {"type": "string", "value": "${_type}#${id}"},
                "sk": {"type": "string", "value": "${_type}#"},
                "id": {"type": "string", "generate": "ulid"},
                "email": {"type": "string", "required": True}
            }
        },
        "params": {"timestamps": True}
    }

Two reserved models always exist: ``_Generic`` for raw attribute access and
``_Unique`` for uniqueness markers, which are never returned as typed items.
"""

import copy
import logging
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from ..core.dispatcher import GENERIC_MODEL, UNIQUE_MODEL
from ..core.table_definition import IndexDefinition, parse_indexes
from ..exceptions import ConfigurationError, ValidationError
from .model import Model

if TYPE_CHECKING:
    from ..table import Table

logger = logging.getLogger(__name__)

DEFAULT_INDEXES = {'primary': {'hash': 'pk', 'sort': 'sk'}}


class SchemaDefinition(BaseModel):
    """Validated shape of a schema dictionary."""

    version: str = Field(default="0.0.1", description="Schema version")
    format: Optional[str] = Field(default=None, description="Schema format identifier")
    indexes: Dict[str, Dict[str, Any]] = Field(default_factory=lambda: dict(DEFAULT_INDEXES))
    models: Dict[str, Dict[str, Dict[str, Any]]] = Field(default_factory=dict)
    params: Dict[str, Any] = Field(default_factory=dict)


class Schema:
    """Index definitions and models for a table."""

    def __init__(self, table: 'Table', schema: Optional[Mapping[str, Any]] = None):
        self.table = table
        self.definition: Optional[SchemaDefinition] = None
        self.indexes: Dict[str, IndexDefinition] = {}
        self.models: Dict[str, Model] = {}
        self.set_schema(schema)

    def set_schema(self, schema: Optional[Mapping[str, Any]] = None) -> Dict[str, IndexDefinition]:
        """
        Replace the current schema.

        Args:
            schema: Schema dictionary; None installs the default indexes and
                no models

        Returns:
            The parsed index definitions

        Raises:
            ValidationError: The schema dictionary is malformed
            ConfigurationError: The indexes are unusable
        """
        try:
            definition = SchemaDefinition(**dict(schema or {}))
        except PydanticValidationError as e:
            raise ValidationError("Invalid schema", errors={'schema': e.errors()}, original_error=e) from e

        indexes = parse_indexes(definition.indexes)

        self.definition = definition
        self.indexes = indexes
        self.models = {}
        self.generic_model = Model(self.table, GENERIC_MODEL, generic=True)
        self.unique_model = Model(self.table, UNIQUE_MODEL, generic=True)
        self.models[GENERIC_MODEL] = self.generic_model
        self.models[UNIQUE_MODEL] = self.unique_model
        for name, fields in definition.models.items():
            self.add_model(name, fields)

        if definition.params:
            self.table.set_params(definition.params)

        logger.debug(f"Schema {definition.version} loaded with models {self.list_models()}")
        return indexes

    def bind(self, table: 'Table') -> 'Schema':
        """Return a schema sharing these indexes with every model bound to ``table``."""
        schema = copy.copy(self)
        schema.table = table
        schema.models = {name: model.bind(table) for name, model in self.models.items()}
        schema.generic_model = schema.models[GENERIC_MODEL]
        schema.unique_model = schema.models[UNIQUE_MODEL]
        return schema

    def get_current_schema(self) -> Optional[Dict[str, Any]]:
        """Return the current schema as a dictionary, including models added since it loaded."""
        if self.definition is None:
            return None
        schema = self.definition.model_dump(exclude_none=True)
        schema['models'] = {
            name: {field: definition.model_dump(exclude_defaults=True) for field, definition in model.fields.items()}
            for name, model in self.models.items()
            if name not in (GENERIC_MODEL, UNIQUE_MODEL)
        }
        return schema

    def get_keys(self) -> Dict[str, Dict[str, Any]]:
        return {name: index.model_dump(exclude={'name'}, exclude_none=True) for name, index in self.indexes.items()}

    def list_models(self) -> List[str]:
        return [name for name in self.models if name not in (GENERIC_MODEL, UNIQUE_MODEL)]

    def add_model(self, name: str, fields: Mapping[str, Any]) -> Model:
        if name in (GENERIC_MODEL, UNIQUE_MODEL):
            raise ConfigurationError(f'Model name "{name}" is reserved', 'models')
        model = Model(self.table, name, fields)
        self.models[name] = model
        return model

    def get_model(self, name: str) -> Model:
        """Return the named model. Raises ConfigurationError if it is not defined."""
        model = self.models.get(name)
        if model is None:
            raise ConfigurationError(f'Cannot find model "{name}"', 'models')
        return model

    def remove_model(self, name: str) -> None:
        if name in (GENERIC_MODEL, UNIQUE_MODEL) or name not in self.models:
            raise ConfigurationError(f'Cannot find model "{name}"', 'models')
        del self.models[name]
