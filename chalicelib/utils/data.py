import json
from datetime import datetime
from decimal import Decimal, InvalidOperation

from chalicelib.constants.constants import PRICE_QUANTUM
from chalicelib.utils import exceptions


def replace_dict_key(item, orig_key, new_key):
    if orig_key in item:
        if new_key not in item:
            item[new_key] = item[orig_key]
        del item[orig_key]


def substitute_keys_from_db(item):
    item.pop('partkey', None)
    item.pop('sortkey', None)
    return item


def substitute_keys(dict_to_process: dict, base_keys: dict, opt_dict=None):
    if opt_dict is None:
        opt_dict = {}
    all_keys = {**base_keys, **opt_dict}
    for key, val in all_keys.items():
        if val:
            replace_dict_key(dict_to_process, key, val)
        elif key in dict_to_process.keys():
            dict_to_process.pop(key, None)
    return dict_to_process


def parse_raw_body(chalice_request):
    request_raw_body = chalice_request.raw_body
    if not request_raw_body:
        return {}
    try:
        body = json.loads(request_raw_body)
    except ValueError as error:
        raise exceptions.InvalidInput(f'Request body is not valid JSON: {error}') from error
    if not isinstance(body, dict):
        raise exceptions.InvalidInput('Request body must be a JSON object')
    return fix_values_from_ui(item=body)


def fix_values_from_ui(item):
    """
    Remove keys with None values and transform float to Decimal
    """
    item = cleanup_dict(item, [None])
    result = json.dumps(item)
    return json.loads(result, parse_float=Decimal)


def cleanup_dict(item: dict, list_of_values: list):
    """ Remove None fields in dict with. Supports one nesting.  """

    def sub_clean(sub_item):
        return {
            key: value
            for key, value in sub_item.items()
            if value not in list_of_values
        }

    clean = {}
    for k, v in item.items():
        if isinstance(v, dict):
            nested = sub_clean(v)
            if len(nested.keys()) > 0:
                clean[k] = nested
        elif v not in list_of_values:
            clean[k] = v
    return clean


def now_iso() -> str:
    return datetime.now().isoformat(timespec='seconds')


def parse_iso(value, field: str) -> str:
    """
    Normalize a timestamp coming from the caller to the stored format, naive local time.
    Values carrying an offset are converted to local time first.
    """
    if isinstance(value, str) and value.endswith(('Z', 'z')):
        value = value[:-1] + '+00:00'
    try:
        parsed = value if isinstance(value, datetime) else datetime.fromisoformat(value)
    except (TypeError, ValueError) as error:
        raise exceptions.InvalidInput(f'{field}={value!r} is not an ISO-8601 timestamp') from error
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed.isoformat(timespec='seconds')


def to_price(value) -> Decimal:
    try:
        price = Decimal(str(value)).quantize(Decimal(PRICE_QUANTUM))
    except (InvalidOperation, ValueError) as error:
        raise exceptions.ValidationException(f'price={value!r} is not a number') from error
    if price < 0:
        raise exceptions.ValidationException(f'price={value!r} must not be negative')
    return price


def to_int(value, field: str) -> int:
    if isinstance(value, bool):
        raise exceptions.InvalidInput(f'{field}={value!r} is not an integer')
    try:
        number = int(value)
        if isinstance(value, (float, Decimal)) and number != value:
            raise ValueError('fractional part')
    except (TypeError, ValueError, OverflowError, InvalidOperation) as error:
        raise exceptions.InvalidInput(f'{field}={value!r} is not an integer') from error
    return number


def to_bool(value, field: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.lower() in ('true', 'false'):
        return value.lower() == 'true'
    raise exceptions.InvalidInput(f'{field}={value!r} is not a boolean')
