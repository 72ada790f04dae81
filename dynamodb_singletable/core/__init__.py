"""
Core engine components for single-table DynamoDB access.

This module contains the foundational components used by the table facade:
- Store client adapters for both client generations
- FormatCompat: marshalling across client generations
- OperationDispatcher: single choke point for every table operation
- CryptoRegistry: field-level encryption profiles
- Table definition builder and metrics collaborator
"""

from .clients import (
    Boto3StoreClient,
    ClientGeneration,
    LegacyDocumentClient,
    LegacySet,
    StoreClient,
    create_store_client,
)
from .crypto import CryptoProfile, CryptoRegistry
from .dispatcher import GENERIC_MODEL, OPERATION_NAMES, UNIQUE_MODEL, OperationDispatcher, OperationTrace
from .marshalling import FormatCompat, is_legacy_set
from .metrics import OperationMetrics, OperationStats
from .table_definition import IndexDefinition, build_table_definition, parse_indexes

__all__ = [
    # Clients
    "Boto3StoreClient",
    "ClientGeneration",
    "LegacyDocumentClient",
    "LegacySet",
    "StoreClient",
    "create_store_client",

    # Crypto
    "CryptoProfile",
    "CryptoRegistry",

    # Dispatch
    "GENERIC_MODEL",
    "OPERATION_NAMES",
    "UNIQUE_MODEL",
    "OperationDispatcher",
    "OperationTrace",

    # Marshalling
    "FormatCompat",
    "is_legacy_set",

    # Metrics
    "OperationMetrics",
    "OperationStats",

    # Table definitions
    "IndexDefinition",
    "build_table_definition",
    "parse_indexes",
]
