"""
Test configuration and fixtures for the single-table engine.

Provides a table configuration, a schema, store clients backed by
``unittest.mock`` for unit tests, and tables backed by moto's in-process
DynamoDB for integration tests.
"""

from unittest.mock import Mock

import boto3
import pytest
from moto import mock_aws

from dynamodb_singletable import SingleTableConfig, Table
from dynamodb_singletable.core import Boto3StoreClient, LegacyDocumentClient

TABLE_NAME = 'TestTable'

SCHEMA = {
    'version': '0.0.1',
    'indexes': {
        'primary': {'hash': 'pk', 'sort': 'sk'},
        'gs1': {'hash': 'gs1pk', 'sort': 'gs1sk', 'project': 'all'},
    },
    'models': {
        'User': {
            'pk': {'type': 'string', 'value': '${_type}#${id}'},
            'sk': {'type': 'string', 'value': '${_type}#'},
            'gs1pk': {'type': 'string', 'value': 'account#${accountId}'},
            'gs1sk': {'type': 'string', 'value': 'user#${email}'},
            'id': {'type': 'string', 'generate': 'ulid'},
            'accountId': {'type': 'string'},
            'name': {'type': 'string'},
            'email': {'type': 'string', 'required': True},
            'password': {'type': 'string', 'crypt': True},
            'tags': {'type': 'set'},
            'avatar': {'type': 'binary'},
        },
        'Account': {
            'pk': {'type': 'string', 'value': '${_type}#${id}'},
            'sk': {'type': 'string', 'value': '${_type}#'},
            'id': {'type': 'string', 'generate': 'uuid'},
            'name': {'type': 'string', 'required': True},
        },
    },
}


@pytest.fixture
def aws_credentials(monkeypatch):
    """Mocked AWS credentials for moto."""
    monkeypatch.setenv('AWS_ACCESS_KEY_ID', 'testing')
    monkeypatch.setenv('AWS_SECRET_ACCESS_KEY', 'testing')
    monkeypatch.setenv('AWS_SECURITY_TOKEN', 'testing')
    monkeypatch.setenv('AWS_SESSION_TOKEN', 'testing')
    monkeypatch.setenv('AWS_DEFAULT_REGION', 'us-east-1')


@pytest.fixture
def config():
    """Table configuration for testing."""
    return SingleTableConfig(
        name=TABLE_NAME,
        table_prefix='',
        aws_access_key_id='testing',
        aws_secret_access_key='testing',
        region_name='us-east-1',
        endpoint_url=None,
        client_generation='current',
        crypto={'primary': {'cipher': 'aes-256-gcm', 'password': 'test-password'}},
    )


@pytest.fixture
def schema():
    return SCHEMA


@pytest.fixture
def mock_dynamodb():
    """Mock boto3 low-level DynamoDB client."""
    client = Mock()
    client.put_item.return_value = {'ResponseMetadata': {'HTTPStatusCode': 200}}
    client.get_item.return_value = {}
    client.query.return_value = {'Items': [], 'Count': 0}
    client.scan.return_value = {'Items': [], 'Count': 0}
    client.update_item.return_value = {'Attributes': {}}
    client.delete_item.return_value = {'Attributes': {}}
    return client


@pytest.fixture
def mock_table(config, schema, mock_dynamodb):
    """Table over a current-generation adapter wrapping a mock boto3 client."""
    client = Boto3StoreClient(mock_dynamodb, config.marshall_options, config.unmarshall_options)
    return Table(config, client=client, schema=schema)


@pytest.fixture
def dynamodb_client(aws_credentials):
    """In-process DynamoDB client."""
    with mock_aws():
        yield boto3.client('dynamodb', region_name='us-east-1')


@pytest.fixture
def table(config, schema, dynamodb_client):
    """Current-generation table created in moto."""
    client = Boto3StoreClient(dynamodb_client, config.marshall_options, config.unmarshall_options)
    table = Table(config, client=client, schema=schema)
    table.create_table()
    return table


@pytest.fixture
def legacy_table(config, schema, dynamodb_client):
    """Legacy-generation table created in moto."""
    client = LegacyDocumentClient(dynamodb_client, max_workers=2)
    table = Table(config, client=client, schema=schema)
    if not table.exists():
        table.create_table()
    yield table
    client.close()
