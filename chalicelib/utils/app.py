import functools
from typing import Callable

from chalice import Response

from chalicelib.constants import status_codes
from chalicelib.data_store import DataStore, DynamoDataStore
from chalicelib.utils.exceptions import CafeError, StoreUnavailable
from chalicelib.utils.logger import logger, log_exception

_DATA_STORE = None


def get_data_store() -> DataStore:
    global _DATA_STORE
    if _DATA_STORE is None:
        _DATA_STORE = DynamoDataStore()
    return _DATA_STORE


def error_response(error: Exception, msg: str = "", status_code: int = 400, *args, **kwargs):
    log_exception(error=error, msg=msg, status_code=status_code, *args, **kwargs)
    return Response(
        body={
            'error': str(error),
            'exception': error.__class__.__name__,
            'kind': getattr(error, 'KIND', 'error'),
            "message": str(msg),
            'error_id': getattr(logger, 'current_request_id'),
            'level': getattr(error, 'LEVEL', 'exception')
        },
        status_code=status_code,
        headers={'Content-Type': 'application/json'}
    )


def result_response(result, status_code: int = status_codes.http200) -> Response:
    """
    Successful Result becomes the response body, a failed one an error response
    """
    if result.ok:
        return Response(status_code=status_code, body=result.value)
    body = {
        'error': result.reason,
        'exception': result.error.__class__.__name__,
        'kind': result.kind,
        'error_id': getattr(logger, 'current_request_id')
    }
    order_id = getattr(result.error, 'order_id', None)
    if order_id is not None:
        body['order_id'] = order_id
        body['written'] = result.error.written
        body['expected'] = result.error.expected
    return Response(status_code=result.status_code, body=body, headers={'Content-Type': 'application/json'})


def request_exception_handler(func: Callable):
    @functools.wraps(func)
    def result(*args, **kwargs):
        try:
            logger.info(f'Calling function {func.__name__}')
            return func(*args, **kwargs)
        except CafeError as cafe_error:
            return error_response(
                error=cafe_error,
                msg=f'function = {func.__name__} , error = {cafe_error}',
                status_code=cafe_error.STATUS_CODE)
        except StoreUnavailable as store_unavailable:
            return error_response(
                error=store_unavailable,
                msg='Order storage is temporarily unavailable, please retry',
                status_code=status_codes.http503)
        except Exception as exception:
            return error_response(
                error=exception,
                msg=f'function = {func.__name__}, error = {exception}',
                status_code=status_codes.http500)
    return result


def log_start_finish(func: Callable):
    @functools.wraps(func)
    def result(*args, **kwargs):
        logger.info(f'{func.__name__} ::: started')
        response = func(*args, **kwargs)
        logger.info(f'{func.__name__} ::: finished')
        return response
    return result
