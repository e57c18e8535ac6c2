import functools
from typing import Any, Callable

from chalicelib.utils.exceptions import CafeError
from chalicelib.utils.logger import log_exception


class Result:
    """
    Outcome of a core operation: either a value or the typed error that prevented it
    """

    def __init__(self, value: Any = None, error: CafeError = None):
        self.value = value
        self.error = error

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def kind(self) -> str:
        return 'ok' if self.ok else self.error.KIND

    @property
    def reason(self) -> str:
        return '' if self.ok else str(self.error)

    @property
    def status_code(self) -> int:
        return getattr(self.error, 'STATUS_CODE', 400)

    def __bool__(self):
        return self.ok

    def __repr__(self):
        if self.ok:
            return f'Result(ok, value={self.value!r})'
        return f'Result({self.kind}, {self.error.__class__.__name__}: {self.reason})'


def returns_result(func: Callable):
    """
    Turns CafeError raised by a core operation into a failed Result.
    StoreUnavailable and programming errors propagate.
    """
    @functools.wraps(func)
    def result(*args, **kwargs):
        try:
            return Result(value=func(*args, **kwargs))
        except CafeError as error:
            log_exception(error, status_code=error.STATUS_CODE, msg=f'{func.__name__} failed')
            return Result(error=error)
    return result
