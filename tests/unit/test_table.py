"""
Tests for the Table facade (table.py) and the models it drives.

The store is a mock boto3 client behind a real current-generation adapter,
so the commands asserted here are exactly what boto3 would receive.
"""

from unittest.mock import Mock

import pytest

from dynamodb_singletable import CONFIRM_REMOVE_TABLE, Table
from dynamodb_singletable.core.metrics import OperationMetrics
from dynamodb_singletable.exceptions import ConfigurationError, ValidationError


class TestConstruction:

    def test_missing_table_name(self, config):
        with pytest.raises(ConfigurationError, match='Missing table name'):
            Table(config.model_copy(update={'name': ''}), client=Mock())

    def test_table_prefix(self, config, mock_table):
        table = Table(config.model_copy(update={'table_prefix': 'dev'}), client=mock_table.client)
        assert table.name == 'dev_TestTable'

    def test_default_schema(self, config, mock_table):
        table = Table(config, client=mock_table.client)

        assert table.get_primary_keys() == {'hash': 'pk', 'sort': 'sk'}
        assert table.list_models() == []

    def test_client_created_lazily(self, config):
        table = Table(config)
        assert table._client is None

    def test_params_from_config(self, config, mock_table):
        table = Table(config.model_copy(update={'type_field': 'kind', 'timestamps': True}), client=mock_table.client)

        params = table.get_params()
        assert params['type_field'] == 'kind'
        assert params['timestamps'] is True
        assert params['delimiter'] == '#'

    def test_schema_params_applied(self, config, schema, mock_table):
        table = Table(config, client=mock_table.client, schema={**schema, 'params': {'timestamps': True, 'uuid': 'ulid'}})

        assert table.timestamps is True
        assert len(table.make_id()) == 26


class TestSchema:

    def test_models(self, mock_table):
        assert mock_table.list_models() == ['User', 'Account']
        assert mock_table.get_model('User').name == 'User'

    def test_unknown_model(self, mock_table):
        with pytest.raises(ConfigurationError, match='Cannot find model "Nope"'):
            mock_table.get_model('Nope')

    def test_add_and_remove_model(self, mock_table):
        mock_table.add_model('Order', {'pk': {'value': 'Order#${id}'}, 'sk': {'value': 'Order#'}, 'id': {}})
        assert 'Order' in mock_table.list_models()

        mock_table.remove_model('Order')
        assert 'Order' not in mock_table.list_models()

    def test_reserved_models(self, mock_table):
        with pytest.raises(ConfigurationError):
            mock_table.add_model('_Unique', {})
        with pytest.raises(ConfigurationError):
            mock_table.remove_model('_Generic')

    def test_invalid_field(self, mock_table):
        with pytest.raises(ValidationError, match='Invalid field "x"'):
            mock_table.add_model('Bad', {'x': {'type': 'nonsense'}})

    def test_invalid_schema(self, mock_table):
        with pytest.raises(ValidationError, match='Invalid schema'):
            mock_table.set_schema({'indexes': 'not-a-dict'})

    def test_current_schema(self, mock_table):
        current = mock_table.get_current_schema()

        assert current['indexes']['gs1'] == {'hash': 'gs1pk', 'sort': 'gs1sk', 'project': 'all'}
        assert current['models']['User']['password'] == {'crypt': True}
        assert '_Generic' not in current['models']

    def test_get_keys(self, mock_table):
        assert mock_table.get_keys() == {
            'primary': {'hash': 'pk', 'sort': 'sk'},
            'gs1': {'hash': 'gs1pk', 'sort': 'gs1sk', 'project': 'all'},
        }


class TestTableManagement:

    def test_create_table(self, mock_table, mock_dynamodb):
        mock_dynamodb.create_table.return_value = {'TableDescription': {}}

        mock_table.create_table()

        kwargs = mock_dynamodb.create_table.call_args.kwargs
        assert kwargs['TableName'] == 'TestTable'
        assert kwargs['BillingMode'] == 'PAY_PER_REQUEST'
        assert kwargs['GlobalSecondaryIndexes'][0]['IndexName'] == 'gs1'

    def test_delete_table_requires_confirmation(self, mock_table, mock_dynamodb):
        with pytest.raises(ConfigurationError, match=CONFIRM_REMOVE_TABLE):
            mock_table.delete_table('yes please')

        mock_dynamodb.delete_table.assert_not_called()

    def test_delete_table(self, mock_table, mock_dynamodb):
        mock_table.delete_table(CONFIRM_REMOVE_TABLE)
        mock_dynamodb.delete_table.assert_called_once_with(TableName='TestTable')

    def test_exists(self, mock_table, mock_dynamodb):
        mock_dynamodb.list_tables.return_value = {'TableNames': ['Other', 'TestTable']}
        assert mock_table.exists()

        mock_dynamodb.list_tables.return_value = {'TableNames': ['Other']}
        assert not mock_table.exists()

    def test_describe_table(self, mock_table, mock_dynamodb):
        mock_dynamodb.describe_table.return_value = {'Table': {'TableName': 'TestTable'}}

        assert mock_table.describe_table() == {'Table': {'TableName': 'TestTable'}}
        mock_dynamodb.describe_table.assert_called_once_with(TableName='TestTable')


class TestContext:

    def test_set_add_clear(self, mock_table):
        mock_table.set_context({'accountId': 'a1'})
        mock_table.add_context({'userId': 'u1'})
        assert dict(mock_table.get_context()) == {'accountId': 'a1', 'userId': 'u1'}

        mock_table.set_context({'other': 1})
        assert dict(mock_table.get_context()) == {'other': 1}

        mock_table.set_context({'more': 2}, merge=True)
        assert dict(mock_table.get_context()) == {'other': 1, 'more': 2}

        mock_table.clear_context()
        assert dict(mock_table.get_context()) == {}

    def test_context_is_read_only(self, mock_table):
        mock_table.set_context({'accountId': 'a1'})

        with pytest.raises(TypeError):
            mock_table.get_context()['accountId'] = 'a2'

    def test_snapshot_not_affected_by_caller(self, mock_table):
        context = {'accountId': 'a1'}
        mock_table.set_context(context)
        context['accountId'] = 'changed'

        assert mock_table.get_context()['accountId'] == 'a1'

    def test_child(self, mock_table):
        mock_table.metrics = OperationMetrics()
        mock_table.set_context({'accountId': 'parent'})

        child = mock_table.child({'accountId': 'child'})

        assert child.get_context()['accountId'] == 'child'
        assert mock_table.get_context()['accountId'] == 'parent'
        assert child.client is mock_table.client
        assert child.schema.indexes is mock_table.schema.indexes
        assert child.get_model('User').table is child
        assert mock_table.get_model('User').table is mock_table
        assert child.crypto is mock_table.crypto
        assert child.metrics is mock_table.metrics

    def test_child_records_its_own_metrics(self, mock_table):
        child = mock_table.child({'accountId': 'a1'})
        child.metrics = OperationMetrics()

        child.get('Account', {'id': '1'})

        assert child.metrics.snapshot()['Account']['get']['requests'] == 1
        assert mock_table.metrics is None

    def test_child_params_apply_to_models(self, mock_table, mock_dynamodb):
        child = mock_table.child()
        child.set_params({'timestamps': True})

        child.create('Account', {'id': 'a1', 'name': 'Acme'})

        item = mock_dynamodb.put_item.call_args.kwargs['Item']
        assert 'N' in item['created']
        assert 'N' in item['updated']
        assert mock_table.timestamps is False

    def test_child_context_used_for_writes(self, mock_table, mock_dynamodb):
        mock_table.set_context({'accountId': 'parent'})
        child = mock_table.child({'accountId': 'child'})

        child.create('User', {'id': 'u1', 'email': 'a@x.io'})

        item = mock_dynamodb.put_item.call_args.kwargs['Item']
        assert item['accountId'] == {'S': 'child'}
        assert item['gs1pk'] == {'S': 'account#child'}


class TestModelOperations:

    def test_create_command(self, mock_table, mock_dynamodb):
        result = mock_table.create('User', {'id': 'u1', 'name': 'Alice', 'email': 'a@x.io', 'password': 'pw'})

        kwargs = mock_dynamodb.put_item.call_args.kwargs
        assert kwargs['TableName'] == 'TestTable'
        assert kwargs['ConditionExpression'] == 'attribute_not_exists(#_pk)'
        assert kwargs['ExpressionAttributeNames'] == {'#_pk': 'pk'}

        item = kwargs['Item']
        assert item['pk'] == {'S': 'User#u1'}
        assert item['sk'] == {'S': 'User#'}
        assert item['gs1sk'] == {'S': 'user#a@x.io'}
        assert item['_type'] == {'S': 'User'}
        assert 'gs1pk' not in item
        assert item['password']['S'].startswith('primary:')

        assert result == {'_type': 'User', 'id': 'u1', 'name': 'Alice', 'email': 'a@x.io', 'password': 'pw'}

    def test_create_generates_id(self, mock_table, mock_dynamodb):
        result = mock_table.create('User', {'email': 'a@x.io'})

        assert len(result['id']) == 26
        assert mock_dynamodb.put_item.call_args.kwargs['Item']['pk'] == {'S': f"User#{result['id']}"}

    def test_create_requires_fields(self, mock_table, mock_dynamodb):
        with pytest.raises(ValidationError, match='Missing required fields'):
            mock_table.create('User', {'id': 'u1'})

        mock_dynamodb.put_item.assert_not_called()

    def test_create_with_timestamps(self, mock_table, mock_dynamodb):
        mock_table.set_params({'timestamps': True})

        result = mock_table.create('Account', {'name': 'Acme'})

        item = mock_dynamodb.put_item.call_args.kwargs['Item']
        assert 'N' in item['created']
        assert result['created'].tzinfo is not None
        assert result['updated'] == result['created']

    def test_iso_dates(self, mock_table, mock_dynamodb):
        mock_table.set_params({'timestamps': True, 'iso_dates': True})

        mock_table.create('Account', {'name': 'Acme'})

        assert 'S' in mock_dynamodb.put_item.call_args.kwargs['Item']['created']

    def test_get(self, mock_table, mock_dynamodb):
        token = mock_table.encrypt('pw')
        mock_dynamodb.get_item.return_value = {'Item': {
            'pk': {'S': 'User#u1'},
            'sk': {'S': 'User#'},
            '_type': {'S': 'User'},
            'id': {'S': 'u1'},
            'password': {'S': token},
            'extra': {'S': 'not in model'},
        }}

        result = mock_table.get('User', {'id': 'u1'})

        mock_dynamodb.get_item.assert_called_once_with(
            TableName='TestTable',
            Key={'pk': {'S': 'User#u1'}, 'sk': {'S': 'User#'}},
        )
        assert result == {'_type': 'User', 'id': 'u1', 'password': 'pw'}

    def test_get_hidden(self, mock_table, mock_dynamodb):
        mock_dynamodb.get_item.return_value = {'Item': {'pk': {'S': 'User#u1'}, 'sk': {'S': 'User#'}, 'id': {'S': 'u1'}}}

        result = mock_table.get('User', {'id': 'u1'}, {'hidden': True})

        assert result['pk'] == 'User#u1'

    def test_get_missing(self, mock_table):
        assert mock_table.get('User', {'id': 'u1'}) is None

    def test_get_requires_key(self, mock_table):
        with pytest.raises(ValidationError, match='Missing key attribute "pk"'):
            mock_table.get('User', {'name': 'x'})

    def test_update_command(self, mock_table, mock_dynamodb):
        mock_dynamodb.update_item.return_value = {'Attributes': {'_type': {'S': 'User'}, 'id': {'S': 'u1'}, 'name': {'S': 'Bob'}}}

        result = mock_table.update('User', {'id': 'u1', 'name': 'Bob'})

        kwargs = mock_dynamodb.update_item.call_args.kwargs
        assert kwargs['Key'] == {'pk': {'S': 'User#u1'}, 'sk': {'S': 'User#'}}
        assert kwargs['ConditionExpression'] == 'attribute_exists(#_pk)'
        assert kwargs['ReturnValues'] == 'ALL_NEW'
        assert kwargs['UpdateExpression'].startswith('SET ')
        names = kwargs['ExpressionAttributeNames']
        assert set(names.values()) == {'id', 'name', '_type', 'pk'}
        assert result == {'_type': 'User', 'id': 'u1', 'name': 'Bob'}

    def test_update_without_exists(self, mock_table, mock_dynamodb):
        mock_table.update('User', {'id': 'u1', 'name': 'Bob'}, {'exists': False})
        assert 'ConditionExpression' not in mock_dynamodb.update_item.call_args.kwargs

    def test_remove(self, mock_table, mock_dynamodb):
        mock_dynamodb.delete_item.return_value = {'Attributes': {'_type': {'S': 'User'}, 'id': {'S': 'u1'}}}

        result = mock_table.remove('User', {'id': 'u1'})

        assert mock_dynamodb.delete_item.call_args.kwargs['ReturnValues'] == 'ALL_OLD'
        assert result == {'_type': 'User', 'id': 'u1'}

    def test_find_on_index_with_prefix(self, mock_table, mock_dynamodb):
        mock_dynamodb.query.return_value = {'Items': [{'_type': {'S': 'User'}, 'id': {'S': 'u1'}}]}

        items = mock_table.find('User', {'accountId': 'a1'}, {'index': 'gs1', 'limit': 10})

        kwargs = mock_dynamodb.query.call_args.kwargs
        assert kwargs['IndexName'] == 'gs1'
        assert kwargs['KeyConditionExpression'] == '#_0 = :_0 and begins_with(#_1, :_1)'
        assert kwargs['ExpressionAttributeNames'] == {'#_0': 'gs1pk', '#_1': 'gs1sk', '#_type': '_type'}
        assert kwargs['ExpressionAttributeValues'] == {
            ':_0': {'S': 'account#a1'},
            ':_1': {'S': 'user#'},
            ':_type': {'S': 'User'},
        }
        assert kwargs['FilterExpression'] == '#_type = :_type'
        assert kwargs['Limit'] == 10
        assert items == [{'_type': 'User', 'id': 'u1'}]

    def test_find_unknown_index(self, mock_table):
        with pytest.raises(ConfigurationError, match='Cannot find index'):
            mock_table.find('User', {'id': 'u1'}, {'index': 'gs9'})

    def test_scan_filters_type(self, mock_table, mock_dynamodb):
        mock_table.scan('Account', {'name': 'Acme'})

        kwargs = mock_dynamodb.scan.call_args.kwargs
        assert kwargs['FilterExpression'] == '#_0 = :_0 and #_type = :_type'
        assert kwargs['ExpressionAttributeValues'] == {':_0': {'S': 'Acme'}, ':_type': {'S': 'Account'}}


class TestGenericItems:

    def test_put_item_has_no_condition(self, mock_table, mock_dynamodb):
        mock_table.put_item({'pk': 'raw#1', 'sk': 'raw#', 'anything': 1})

        kwargs = mock_dynamodb.put_item.call_args.kwargs
        assert 'ConditionExpression' not in kwargs
        assert kwargs['Item'] == {'pk': {'S': 'raw#1'}, 'sk': {'S': 'raw#'}, 'anything': {'N': '1'}}

    def test_get_item_returns_raw(self, mock_table, mock_dynamodb):
        mock_dynamodb.get_item.return_value = {'Item': {'pk': {'S': 'raw#1'}, 'sk': {'S': 'raw#'}, 'secret': {'S': 'x'}}}

        assert mock_table.get_item({'pk': 'raw#1', 'sk': 'raw#'}) == {'pk': 'raw#1', 'sk': 'raw#', 'secret': 'x'}

    def test_query_items(self, mock_table, mock_dynamodb):
        mock_table.query_items({'pk': 'raw#1'})

        kwargs = mock_dynamodb.query.call_args.kwargs
        assert kwargs['KeyConditionExpression'] == '#_0 = :_0'
        assert 'FilterExpression' not in kwargs

    def test_scan_and_delete_items(self, mock_table, mock_dynamodb):
        assert mock_table.scan_items() == []
        assert mock_dynamodb.scan.call_args.kwargs == {'TableName': 'TestTable'}

        mock_table.delete_item({'pk': 'raw#1', 'sk': 'raw#'})
        assert mock_dynamodb.delete_item.call_args.kwargs['Key'] == {'pk': {'S': 'raw#1'}, 'sk': {'S': 'raw#'}}

    def test_update_item(self, mock_table, mock_dynamodb):
        mock_table.update_item({'pk': 'raw#1', 'sk': 'raw#', 'count': 2})

        kwargs = mock_dynamodb.update_item.call_args.kwargs
        assert kwargs['UpdateExpression'] == 'SET #_0 = :_0'
        assert kwargs['ExpressionAttributeValues'] == {':_0': {'N': '2'}}


class TestUtilities:

    def test_make_id(self, mock_table):
        assert len(mock_table.make_id()) == 36

        mock_table.set_params({'uuid': 'ulid'})
        assert len(mock_table.make_id()) == 26

        mock_table.set_make_id(lambda: 'fixed')
        assert mock_table.make_id() == 'fixed'

    def test_unknown_generator(self, mock_table):
        with pytest.raises(ConfigurationError):
            mock_table.set_params({'uuid': 'snowflake'})

    def test_group_by_type(self, mock_table):
        groups = mock_table.group_by_type([{'_type': 'User'}, {'_type': 'Account'}])
        assert set(groups) == {'User', 'Account'}

    def test_get_vars(self, mock_table):
        assert mock_table.get_vars('${_type}#${id}') == ['_type', 'id']

    def test_merge(self, mock_table):
        assert mock_table.merge({'a': {'b': 1}}, {'a': {'c': 2}}) == {'a': {'b': 1, 'c': 2}}

    def test_crypto(self, mock_table):
        token = mock_table.encrypt('value')
        assert mock_table.decrypt(token) == 'value'

        mock_table.init_crypto({'primary': {'cipher': 'aes-256-cbc', 'password': 'new'}})
        assert mock_table.encrypt('value').split(':')[1] == ''

    def test_marshall(self, mock_table):
        assert mock_table.marshall({'a': 'x'}) == {'a': {'S': 'x'}}
        assert mock_table.unmarshall([{'a': {'S': 'x'}}]) == [{'a': 'x'}]
