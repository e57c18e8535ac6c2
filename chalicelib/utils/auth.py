import functools

from chalice.app import Request

from chalicelib.users import User, Session
from chalicelib.utils import exceptions as utils_exceptions
from chalicelib.utils.app import error_response, get_data_store
from chalicelib.utils.logger import log_request, logger, set_request_id


def get_session(request: Request) -> Session:
    """
    Credentials are checked upstream; the header only names the login acting.
    """
    login = (request.headers or {}).get('authorization')
    if not login:
        raise utils_exceptions.NotAuthorizedException('Authorization header with the user login is required')
    try:
        user = User.init_by_login(get_data_store(), login)
    except utils_exceptions.UserNotFound:
        raise utils_exceptions.NotAuthorizedException(f'Unknown user login={login}')
    return Session.from_user(user)


def authenticate(func):
    """
    Wrapper for endpoint functions which require user's authentication,
    the request is the first argument
    """

    @functools.wraps(func)
    def result_auth(*args, **kwargs):
        request = args[0]
        set_request_id(request)
        log_request(request)
        try:
            session = get_session(request)
        except utils_exceptions.CafeError as err:
            logger.error(f"authenticate ::: {str(err)}")
            return error_response(err, msg=f'{func.__name__}', status_code=err.STATUS_CODE)
        except utils_exceptions.StoreUnavailable as err:
            return error_response(err, msg=f'{func.__name__}', status_code=err.STATUS_CODE)
        setattr(request, 'session', session)
        logger.current_login = session.login
        logger.info(f'authenticate ::: SUCCESS, {session}, func.__name__ {func.__name__}')
        return func(*args, **kwargs)

    return result_auth
