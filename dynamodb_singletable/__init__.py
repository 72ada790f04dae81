"""
DynamoDB Single-Table Library

Maps many entity types onto one DynamoDB table using boto3 and Pydantic:
schema-driven index definitions, a single dispatch point that normalizes two
client generations, captures metrics and classifies errors, field-level
encryption, and set marshalling across client generations.
"""

from .config import CryptoSettings, SingleTableConfig
from .exceptions import (
    ConfigurationError,
    ConflictError,
    CryptoError,
    ErrorKind,
    SingleTableError,
    StoreError,
    TamperError,
    ValidationError,
)
from .core import (
    Boto3StoreClient,
    ClientGeneration,
    CryptoRegistry,
    FormatCompat,
    IndexDefinition,
    LegacyDocumentClient,
    OperationDispatcher,
    OperationMetrics,
    build_table_definition,
    create_store_client,
)
from .models import FieldDefinition, Model, Schema
from .table import CONFIRM_REMOVE_TABLE, Table

__version__ = "1.0.0"
__all__ = [
    # Configuration
    "CryptoSettings",
    "SingleTableConfig",

    # Exceptions
    "ConfigurationError",
    "ConflictError",
    "CryptoError",
    "ErrorKind",
    "SingleTableError",
    "StoreError",
    "TamperError",
    "ValidationError",

    # Core engine
    "Boto3StoreClient",
    "ClientGeneration",
    "CryptoRegistry",
    "FormatCompat",
    "IndexDefinition",
    "LegacyDocumentClient",
    "OperationDispatcher",
    "OperationMetrics",
    "build_table_definition",
    "create_store_client",

    # Schema and models
    "FieldDefinition",
    "Model",
    "Schema",

    # Facade
    "CONFIRM_REMOVE_TABLE",
    "Table",
]
