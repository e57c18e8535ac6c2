import functools
import re
from random import uniform
from time import sleep
from typing import Dict, List, Tuple

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from chalicelib.utils import exceptions
from chalicelib.utils.boto_clients import db_read_max_retries
from chalicelib.utils.logger import logger, log_exception

# For safe db operations
RETRY_EXCEPTIONS = ('ProvisionedThroughputExceededException', 'ThrottlingException', 'RequestLimitExceeded')
need_return_capacity = ('put_item', 'get_item', 'update_item', 'query', 'transact_write_items')
read_methods = ('get_item', 'query')
write_methods = ('put_item', 'update_item', 'transact_write_items')

BACKOFF_BASE = 0.05
BACKOFF_CAP = 2.0


def _error_code(error: ClientError) -> str:
    return error.response.get('Error', {}).get('Code', '')


def _cancellation_codes(error: ClientError) -> List:
    reasons = error.response.get('CancellationReasons')
    if reasons:
        return [reason.get('Code') for reason in reasons]
    match = re.search(r'\[(.*)\]', error.response.get('Error', {}).get('Message', ''))
    if match:
        return [code.strip() for code in match.group(1).split(',')]
    return []


def exp_db_backoff(func):
    """
        should be used for any atomic
        get/query in the code, retries only throttling errors
    """

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        logger.debug(f'{func.__name__}:: args={args}, kwargs={kwargs}')
        if func.__name__ not in read_methods:
            raise RuntimeError("This decorator only for DynamoDB read methods")
        kwargs.update({'ReturnConsumedCapacity': 'TOTAL'})
        max_retries = db_read_max_retries

        for retries in range(max_retries):
            try:
                result = func(*args, **kwargs)
                logger.info(f'{func.__name__}:: SUCCESS, consumed={result.get("ConsumedCapacity")}')
                return result

            except ClientError as e:
                if _error_code(e) not in RETRY_EXCEPTIONS:
                    log_exception(e, msg=f'Got exception while trying to {func.__name__}: ')
                    raise exceptions.StoreUnavailable(f'{func.__name__} failed: {e}') from e
                timeout = min(BACKOFF_CAP, BACKOFF_BASE * 2 ** retries) * uniform(0.5, 1)
                logger.warning(f'{func.__name__}:: throttled, retry {retries + 1}/{max_retries} in {timeout:.3f}s')
                sleep(timeout)

            except BotoCoreError as e:
                log_exception(e, msg=f'Got exception while trying to {func.__name__}: ')
                raise exceptions.StoreUnavailable(f'{func.__name__} failed: {e}') from e

        raise exceptions.NumberOfRetriesExceeded(
            f"MaxNumber={max_retries} of DB retries has exceeded"
        )

    return wrapper


def single_db_write(func):
    """
        wraps DynamoDB write methods, a write is never repeated
    """

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        logger.debug(f'{func.__name__}:: args={args}, kwargs={kwargs}')
        if func.__name__ not in write_methods:
            raise RuntimeError("This decorator only for DynamoDB write methods")
        kwargs.update({'ReturnConsumedCapacity': 'TOTAL'})
        try:
            result = func(*args, **kwargs)
            logger.info(f'{func.__name__}:: SUCCESS, consumed={result.get("ConsumedCapacity")}')
            return result

        except ClientError as e:
            code = _error_code(e)
            if code == 'ConditionalCheckFailedException':
                raise exceptions.ConditionFailed(f'{func.__name__} condition failed') from e
            if code == 'TransactionCanceledException':
                codes = _cancellation_codes(e)
                failed = [index for index, reason in enumerate(codes) if reason == 'ConditionalCheckFailed']
                if failed:
                    raise exceptions.ConditionFailed(f'{func.__name__} condition failed', failed) from e
            log_exception(e, msg=f'Got exception while trying to {func.__name__}: ')
            raise exceptions.StoreUnavailable(f'{func.__name__} failed: {e}') from e

        except BotoCoreError as e:
            log_exception(e, msg=f'Got exception while trying to {func.__name__}: ')
            raise exceptions.StoreUnavailable(f'{func.__name__} failed: {e}') from e

    return wrapper


def get_table(table_name: str, config, endpoint_url: str = None):
    if endpoint_url:
        gl_table = boto3.resource('dynamodb', endpoint_url=endpoint_url, config=config).Table(table_name)
    else:
        gl_table = boto3.resource('dynamodb', config=config).Table(table_name)

    gl_table.get_item = exp_db_backoff(gl_table.get_item)
    gl_table.query = exp_db_backoff(gl_table.query)
    gl_table.put_item = single_db_write(gl_table.put_item)
    gl_table.update_item = single_db_write(gl_table.update_item)

    return gl_table


def generate_update_expression(update_body: Dict, increments: Dict = None) -> Tuple[str, Dict, Dict]:
    """
    Generate SET / ADD expression, every attribute goes through a placeholder
    """
    expr_attr_names = {}
    expr_attr_values = {}
    set_parts = []
    add_parts = []
    for i, (field, value) in enumerate(update_body.items()):
        expr_attr_names[f'#u{i}'] = field
        expr_attr_values[f':u{i}'] = value
        set_parts.append(f'#u{i}=:u{i}')

    for i, (field, value) in enumerate((increments or {}).items()):
        expr_attr_names[f'#a{i}'] = field
        expr_attr_values[f':a{i}'] = value
        add_parts.append(f'#a{i} :a{i}')

    expression = ''
    if set_parts:
        expression += 'SET ' + ', '.join(set_parts)
    if add_parts:
        expression += ' ADD ' + ', '.join(add_parts)

    return expression.strip(), expr_attr_names, expr_attr_values


def generate_condition_expression(expected: Dict = None, must_exist: bool = True) -> Tuple[str, Dict, Dict]:
    parts = ['attribute_exists(partkey)'] if must_exist else ['attribute_not_exists(partkey)']
    expr_attr_names = {}
    expr_attr_values = {}
    for i, (field, value) in enumerate((expected or {}).items()):
        expr_attr_names[f'#c{i}'] = field
        expr_attr_values[f':c{i}'] = value
        parts.append(f'#c{i}=:c{i}')

    return ' AND '.join(parts), expr_attr_names, expr_attr_values


def put_operation(item: Dict, unique: bool = True) -> Dict:
    operation = {'Item': item}
    if unique:
        operation['ConditionExpression'] = 'attribute_not_exists(partkey)'
    return operation


def update_operation(key: Dict, update_body: Dict, increments: Dict = None, expected: Dict = None) -> Dict:
    update_expr, names, values = generate_update_expression(update_body, increments)
    condition_expr, condition_names, condition_values = generate_condition_expression(expected)
    operation = {
        'Key': key,
        'UpdateExpression': update_expr,
        'ConditionExpression': condition_expr,
        'ExpressionAttributeNames': {**names, **condition_names}
    }
    if values or condition_values:
        operation['ExpressionAttributeValues'] = {**values, **condition_values}
    return operation


def put_db_record(table, item: Dict, unique: bool = True):
    try:
        table.put_item(**put_operation(item, unique))
    except exceptions.ConditionFailed as e:
        raise exceptions.DuplicateRecord(
            f"record partkey={item['partkey']} sortkey={item['sortkey']} already exists") from e


def update_db_record(table, key: Dict, update_body: Dict, increments: Dict = None, expected: Dict = None) -> Dict:
    """
    Conditional update, raises ConditionFailed when the record is absent
    or any of the expected attribute values differ
    """
    response = table.update_item(
        ReturnValues='ALL_NEW',
        **update_operation(key, update_body, increments, expected)
    )
    return response.get('Attributes', {})


def increment_counter(table, key: Dict, attribute: str = 'seq') -> int:
    response = table.update_item(
        Key=key,
        UpdateExpression='ADD #seq :one',
        ExpressionAttributeNames={'#seq': attribute},
        ExpressionAttributeValues={':one': 1},
        ReturnValues='UPDATED_NEW'
    )
    return int(response['Attributes'][attribute])


@single_db_write
def transact_write_items(table, **kwargs):
    return table.meta.client.transact_write_items(**kwargs)


def transact_write_records(table, operations: List[Tuple[str, Dict]]):
    """
    operations: list of ('Put' | 'Update' | 'ConditionCheck', operation dict)
    All of them are applied or none is.
    """
    transact_items = [{kind: {'TableName': table.name, **operation}} for kind, operation in operations]
    return transact_write_items(table, TransactItems=transact_items)


def get_db_item(table, partkey, sortkey) -> Dict:
    result = table.get_item(
        Key={
            'partkey': partkey,
            'sortkey': sortkey
        },
        ConsistentRead=True
    )

    if 'Item' in result:
        return result['Item']
    else:
        logger.info(f"get_db_item ::: record partkey={partkey} sortkey={sortkey} not found")
        raise exceptions.RecordNotFound(f'record partkey={partkey} sortkey={sortkey} not found')


def query_items_paginated(
        table,
        key_condition_expression,
        filter_expression=None,
        projection_expression=None,
        index_name=None,
        expr_attr_names=None,
        limit=None,
        start_key=None,
        scan_forward=True,
        select=None
):
    kwargs = {'KeyConditionExpression': key_condition_expression, 'ScanIndexForward': scan_forward}
    if filter_expression is not None:
        kwargs.update({'FilterExpression': filter_expression})

    if projection_expression:
        kwargs.update({'ProjectionExpression': projection_expression})

    if expr_attr_names:
        kwargs.update({'ExpressionAttributeNames': expr_attr_names})

    if limit:
        kwargs.update({'Limit': int(limit)})

    if index_name:
        kwargs.update({'IndexName': index_name})

    if start_key:
        kwargs.update({'ExclusiveStartKey': start_key})

    if select:
        kwargs.update({'Select': select})

    resp = table.query(**kwargs)
    return resp, resp.get('LastEvaluatedKey')


def query_items_paged(table, key_condition_expression, filter_expression=None, projection_expression=None,
                      index_name=None, expr_attr_names=None, scan_forward=True, limit=None):
    """ This method shall be used whenever you think the query will
        return more than 1mb of data at once, stops paging once limit items are collected"""
    all_items = []
    last_evaluated_key = None
    while True:
        resp, last_evaluated_key = query_items_paginated(
            table,
            key_condition_expression,
            filter_expression=filter_expression,
            projection_expression=projection_expression,
            index_name=index_name,
            expr_attr_names=expr_attr_names,
            limit=limit and limit - len(all_items),
            start_key=last_evaluated_key,
            scan_forward=scan_forward
        )
        all_items.extend(resp.get('Items', []))
        if last_evaluated_key is None or (limit and len(all_items) >= limit):
            return all_items


def count_items(table, key_condition_expression, filter_expression=None, index_name=None) -> int:
    total = 0
    last_evaluated_key = None
    while True:
        resp, last_evaluated_key = query_items_paginated(
            table,
            key_condition_expression,
            filter_expression=filter_expression,
            index_name=index_name,
            start_key=last_evaluated_key,
            select='COUNT'
        )
        total += resp.get('Count', 0)
        if last_evaluated_key is None:
            return total
