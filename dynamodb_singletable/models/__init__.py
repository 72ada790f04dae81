from .model import FIELD_TYPES, FieldDefinition, Model
from .schema import DEFAULT_INDEXES, Schema, SchemaDefinition

__all__ = [
    # Models
    "FIELD_TYPES",
    "FieldDefinition",
    "Model",

    # Schema
    "DEFAULT_INDEXES",
    "Schema",
    "SchemaDefinition",
]
