from datetime import datetime, timedelta
from decimal import Decimal
from typing import Dict, List, Tuple, Any, Optional

from boto3.dynamodb.conditions import Key, Attr

from chalicelib.constants import keys_structure, db_structure
from chalicelib.constants.constants import USERS_TABLE, MENU_ITEMS_TABLE, ORDERS_TABLE, ITEM_STATUSES_TABLE, \
    USER_ORDERS_INDEX, STATUS_DAY_INDEX
from chalicelib.utils import db as utils_db, data as utils_data, exceptions, boto_clients
from chalicelib.utils.logger import logger


def _key_values(fields: Dict, names: Tuple) -> Dict:
    # numbers come back from DynamoDB as Decimal
    return {name: int(fields[name]) if isinstance(fields[name], Decimal) else fields[name] for name in names}


class IndexDefinition:
    """
    Global secondary index of a logical table. Its key attributes are derived from
    record fields and written next to them; records missing a field stay out of the index.
    partition_fields pin a partition by filter, time_field spreads partitions over days.
    """

    def __init__(self, name, pk, sk, fields, partition_fields=(), time_field=None):
        self.name = name
        self.pk = pk
        self.sk = sk
        self.fields: Tuple = fields
        self.partition_fields: Tuple = partition_fields
        self.time_field = time_field

    @property
    def pk_attribute(self) -> str:
        return self.name.split('-')[0] + '_pk'

    @property
    def sk_attribute(self) -> str:
        return self.name.split('-')[0] + '_sk'

    def attributes(self, fields: Dict) -> Dict:
        if any(fields.get(name) is None for name in self.fields):
            return {}
        values = _key_values(fields, self.fields)
        return {self.pk_attribute: self.pk.format(**values), self.sk_attribute: self.sk.format(**values)}

    def pins(self, filter_: Dict) -> bool:
        return bool(self.partition_fields) and all(filter_.get(name) is not None for name in self.partition_fields)

    def partition(self, filter_: Dict) -> str:
        return self.pk.format(**_key_values(filter_, self.partition_fields))

    def day_partitions(self, start: str, end: str) -> List[str]:
        day = datetime.fromisoformat(start).date()
        last = datetime.fromisoformat(end).date()
        partitions = []
        while day <= last:
            partitions.append(self.pk.format(**{self.time_field: day.isoformat()}))
            day += timedelta(days=1)
        return partitions


class TableDefinition:
    """
    Maps a logical table onto the partition / sort keys of the single DynamoDB table
    """

    def __init__(self, name, pk, sk, key_fields, schema, prefix=None, generated_id=None, indexes=()):
        self.name = name
        self.pk = pk
        self.sk = sk
        self.key_fields: Tuple = key_fields
        self.schema: Dict = schema
        self.prefix = prefix
        self.generated_id = generated_id
        self.indexes: Tuple[IndexDefinition, ...] = indexes

    def has_key(self, fields: Dict) -> bool:
        return all(fields.get(key) is not None for key in self.key_fields)

    def key(self, fields: Dict) -> Dict:
        missing = [key for key in self.key_fields if fields.get(key) is None]
        if missing:
            raise exceptions.MandatoryFieldsAreNotFilled(f'{self.name}: key fields {missing} are not filled')
        return {'partkey': self.pk, 'sortkey': self.sk.format(**_key_values(fields, self.key_fields))}

    def key_values(self, fields: Dict) -> Any:
        values = tuple(fields[key] for key in self.key_fields)
        return values[0] if len(values) == 1 else values

    def validate(self, fields: Dict):
        unknown = [field for field in fields if field not in self.schema]
        if unknown:
            raise exceptions.ValidationException(f'{self.name}: unknown fields {unknown}')

    def index_attributes(self, fields: Dict, changed: Dict = None) -> Dict:
        """
        Index key attributes for a record, limited to the indexes touched by changed
        when given (an update of fields on top of the record key)
        """
        attributes = {}
        for index in self.indexes:
            if changed is None or any(name in changed for name in index.fields):
                attributes.update(index.attributes(fields))
        return attributes

    def to_record(self, fields: Dict) -> Dict:
        self.validate(fields)
        return {**self.key(fields), 'record_type': self.name, **fields, **self.index_attributes(fields)}

    def time_index(self, field: str) -> Optional[IndexDefinition]:
        return next((index for index in self.indexes if index.time_field == field), None)

    def pinned_index(self, filter_: Dict) -> Optional[IndexDefinition]:
        return next((index for index in self.indexes if index.pins(filter_)), None)


TABLES: Dict[str, TableDefinition] = {
    USERS_TABLE: TableDefinition(
        USERS_TABLE, keys_structure.users_pk, keys_structure.users_sk, ('login',), db_structure.USER),
    MENU_ITEMS_TABLE: TableDefinition(
        MENU_ITEMS_TABLE, keys_structure.menu_items_pk, keys_structure.menu_items_sk, ('name',),
        db_structure.MENU_ITEM),
    ORDERS_TABLE: TableDefinition(
        ORDERS_TABLE, keys_structure.orders_pk, keys_structure.orders_sk, ('order_id',), db_structure.ORDER,
        generated_id='order_id',
        indexes=(IndexDefinition(USER_ORDERS_INDEX, keys_structure.gsi_user_orders_pk,
                                 keys_structure.gsi_user_orders_sk, ('login', 'order_id'),
                                 partition_fields=('login',)),)),
    ITEM_STATUSES_TABLE: TableDefinition(
        ITEM_STATUSES_TABLE, keys_structure.item_statuses_pk, keys_structure.item_statuses_sk,
        ('order_id', 'line_no'), db_structure.ITEM_STATUS,
        prefix=('order_id', keys_structure.item_statuses_order_prefix),
        indexes=(IndexDefinition(STATUS_DAY_INDEX, keys_structure.gsi_status_day_pk,
                                 keys_structure.gsi_status_day_sk, ('last_updated', 'order_id', 'line_no'),
                                 time_field='last_updated'),)),
}


def get_definition(table: str) -> TableDefinition:
    try:
        return TABLES[table]
    except KeyError:
        raise exceptions.ValidationException(f'Unknown table={table}')


class WriteTransaction:
    """
    Collects inserts and conditional updates that the store applies as one unit.
    """

    def __init__(self, store: 'DataStore'):
        self.store = store
        self.operations: List[Tuple] = []

    def __len__(self):
        return len(self.operations)

    def insert(self, table: str, fields: Dict):
        get_definition(table).validate(fields)
        self.operations.append(('insert', table, dict(fields)))
        return self

    def update(self, table: str, fields: Dict, filter_: Dict, expected: Dict = None, increments: Dict = None):
        definition = get_definition(table)
        definition.validate({**fields, **(increments or {})})
        definition.key(filter_)
        self.operations.append(('update', table, dict(fields), dict(filter_), dict(expected or {}),
                                dict(increments or {})))
        return self

    def commit(self):
        """
        Raises ConditionFailed (with the indexes of the failing operations) when
        any expectation is not met; nothing is written in that case.
        """
        if not self.operations:
            return
        self.store._commit(self.operations)
        logger.info(f'WriteTransaction.commit ::: {len(self.operations)} operations committed')


class DataStore:
    """
    Record store boundary used by the core. Filters are exact-match on field values.
    Should be re-implemented for each backend.
    """

    def next_id(self, table: str) -> int:
        """
        :return:
        store generated, strictly increasing identifier for the table
        """
        raise NotImplementedError

    def insert(self, table: str, fields: Dict):
        """
        Inserts a new record, DuplicateRecord when the key is already taken
        :return:
        key value of the inserted record (generated when the table owns a sequence)
        """
        raise NotImplementedError

    def update(self, table: str, fields: Dict, filter_: Dict, expected: Dict = None, increments: Dict = None) -> int:
        """
        Updates the record identified by filter_ when it exists and matches expected
        :return:
        number of rows affected, 0 or 1
        """
        raise NotImplementedError

    def get(self, table: str, filter_: Dict) -> Dict:
        """
        :return:
        single record by its key, RecordNotFound when absent
        """
        raise NotImplementedError

    def select(self, table: str, filter_: Dict = None, time_range: Tuple = None, descending: bool = False,
               limit: int = None) -> List[Dict]:
        """
        :param time_range: (field, start, end) selects start <= field < end
        :param limit: at most this many records
        :return:
        records ordered by key, or by the index serving the filter
        """
        raise NotImplementedError

    def count(self, table: str, filter_: Dict = None) -> int:
        raise NotImplementedError

    def transaction(self) -> WriteTransaction:
        return WriteTransaction(self)

    def _commit(self, operations: List[Tuple]):
        raise NotImplementedError


class DynamoDataStore(DataStore):

    def __init__(self, read_table=None, write_table=None):
        self._read_table = read_table
        self._write_table = write_table

    @property
    def read_table(self):
        if self._read_table is None:
            self._read_table = utils_db.get_table(
                boto_clients.gen_table_name, boto_clients.aws_config_ddb_read, boto_clients.endpoint_url)
        return self._read_table

    @property
    def write_table(self):
        if self._write_table is None:
            self._write_table = utils_db.get_table(
                boto_clients.gen_table_name, boto_clients.aws_config_ddb_write, boto_clients.endpoint_url)
        return self._write_table

    def next_id(self, table: str) -> int:
        return utils_db.increment_counter(
            self.write_table,
            key={'partkey': keys_structure.counters_pk, 'sortkey': keys_structure.counters_sk.format(table=table)}
        )

    def insert(self, table: str, fields: Dict):
        definition = get_definition(table)
        fields = dict(fields)
        if definition.generated_id and fields.get(definition.generated_id) is None:
            fields[definition.generated_id] = self.next_id(table)
        utils_db.put_db_record(self.write_table, definition.to_record(fields))
        return definition.key_values(fields)

    def update(self, table: str, fields: Dict, filter_: Dict, expected: Dict = None, increments: Dict = None) -> int:
        definition = get_definition(table)
        definition.validate({**fields, **(increments or {})})
        try:
            utils_db.update_db_record(self.write_table, definition.key(filter_),
                                      self._with_index_attributes(definition, fields, filter_), increments,
                                      self._expected(definition, filter_, expected))
        except exceptions.ConditionFailed:
            logger.info(f'update ::: {table=} {filter_=} {expected=} did not match, nothing updated')
            return 0
        return 1

    def get(self, table: str, filter_: Dict) -> Dict:
        definition = get_definition(table)
        key = definition.key(filter_)
        record = utils_db.get_db_item(self.read_table, key['partkey'], key['sortkey'])
        return self._from_db(definition, record)

    def select(self, table: str, filter_: Dict = None, time_range: Tuple = None, descending: bool = False,
               limit: int = None) -> List[Dict]:
        definition = get_definition(table)
        index_name, key_conditions, filter_expression = self._query_plan(definition, filter_ or {}, time_range)
        if descending:
            key_conditions.reverse()
        records = []
        for key_condition in key_conditions:
            records.extend(utils_db.query_items_paged(
                self.read_table,
                key_condition,
                filter_expression=filter_expression,
                index_name=index_name,
                scan_forward=not descending,
                limit=limit and limit - len(records)
            ))
            if limit and len(records) >= limit:
                break
        return [self._from_db(definition, record) for record in records]

    def count(self, table: str, filter_: Dict = None) -> int:
        index_name, key_conditions, filter_expression = self._query_plan(get_definition(table), filter_ or {})
        return sum(utils_db.count_items(self.read_table, key_condition, filter_expression=filter_expression,
                                        index_name=index_name)
                   for key_condition in key_conditions)

    def _commit(self, operations: List[Tuple]):
        dynamo_operations = []
        for operation in operations:
            definition = get_definition(operation[1])
            if operation[0] == 'insert':
                dynamo_operations.append(('Put', utils_db.put_operation(definition.to_record(operation[2]))))
            else:
                _, _, fields, filter_, expected, increments = operation
                dynamo_operations.append(('Update', utils_db.update_operation(
                    definition.key(filter_), self._with_index_attributes(definition, fields, filter_), increments,
                    self._expected(definition, filter_, expected))))
        utils_db.transact_write_records(self.write_table, dynamo_operations)

    @staticmethod
    def _from_db(definition: TableDefinition, record: Dict) -> Dict:
        for index in definition.indexes:
            record.pop(index.pk_attribute, None)
            record.pop(index.sk_attribute, None)
        return utils_data.substitute_keys_from_db(record)

    @staticmethod
    def _with_index_attributes(definition: TableDefinition, fields: Dict, filter_: Dict) -> Dict:
        return {**fields, **definition.index_attributes({**filter_, **fields}, changed=fields)}

    @staticmethod
    def _expected(definition: TableDefinition, filter_: Dict, expected: Dict = None) -> Dict:
        extra = {field: value for field, value in filter_.items() if field not in definition.key_fields}
        return {**extra, **(expected or {})}

    @staticmethod
    def _query_plan(definition: TableDefinition, filter_: Dict, time_range: Tuple = None):
        """
        :return:
        (index name or None, key conditions, filter expression); several key conditions
        when a time range spans day partitions of an index
        """
        index_name = None
        key_conditions = [Key('partkey').eq(definition.pk)]
        remaining = dict(filter_)
        pinned_index = definition.pinned_index(filter_)
        time_index = definition.time_index(time_range[0]) if time_range else None
        if definition.has_key(filter_):
            sortkey = definition.key(filter_)['sortkey']
            key_conditions = [Key('partkey').eq(definition.pk) & Key('sortkey').eq(sortkey)]
            remaining = {field: value for field, value in filter_.items() if field not in definition.key_fields}
        elif definition.prefix and filter_.get(definition.prefix[0]) is not None:
            prefix_field, prefix_template = definition.prefix
            key_conditions = [Key('partkey').eq(definition.pk) & Key('sortkey').begins_with(
                prefix_template.format(**{prefix_field: int(filter_[prefix_field])}))]
            remaining.pop(prefix_field)
        elif pinned_index:
            index_name = pinned_index.name
            key_conditions = [Key(pinned_index.pk_attribute).eq(pinned_index.partition(filter_))]
            for field in pinned_index.partition_fields:
                remaining.pop(field)
        elif time_index:
            _, start, end = time_range
            index_name = time_index.name
            # sort key starts with the timestamp, so between() keeps exactly [start, end)
            key_conditions = [
                Key(time_index.pk_attribute).eq(partition) & Key(time_index.sk_attribute).between(start, end)
                for partition in time_index.day_partitions(start, end)
            ]

        filter_expression = None
        for field, value in remaining.items():
            condition = Attr(field).eq(value)
            filter_expression = condition if filter_expression is None else filter_expression & condition

        if time_range:
            field, start, end = time_range
            condition = Attr(field).gte(start) & Attr(field).lt(end)
            filter_expression = condition if filter_expression is None else filter_expression & condition

        return index_name, key_conditions, filter_expression
