"""
Bounded retry around database calls, and the one place SQLAlchemy errors are classified.

Transient (connection refused/reset, timeouts, invalidated connections) -> retried by tenacity with
exponential backoff, then surfaced as TransientStoreError.
Everything else from the store (IntegrityError, ProgrammingError, ...) -> PermanentStoreError,
raised immediately. Domain errors (NotFoundError, ValidationError) pass through untouched.
"""
import functools
import logging
import time
from typing import Callable, TypeVar

from sqlalchemy import exc as sa_exc
from sqlalchemy.orm import Session
from tenacity import RetryCallState, Retrying, retry_if_exception, stop_after_attempt, wait_exponential

from butternovel.config import settings
from butternovel.core.errors import PermanentStoreError, ServiceError, TransientStoreError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def is_transient_db_error(exc: BaseException) -> bool:
    """True for connectivity/timeout failures that a new attempt may not hit."""
    if isinstance(exc, (sa_exc.DisconnectionError, sa_exc.TimeoutError)):
        return True
    if isinstance(exc, sa_exc.DBAPIError) and exc.connection_invalidated:
        return True
    return isinstance(exc, sa_exc.OperationalError)


def translate_db_error(exc: sa_exc.SQLAlchemyError) -> ServiceError:
    """Map a SQLAlchemy exception onto the service error taxonomy."""
    if is_transient_db_error(exc):
        return TransientStoreError(str(exc.__class__.__name__))
    return PermanentStoreError(str(exc.__class__.__name__))


def with_db_retry(
    operation: Callable[[], T],
    *,
    session: Session | None = None,
    attempts: int | None = None,
    base_delay: float | None = None,
    max_delay: float | None = None,
    operation_name: str = "Database operation",
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    Run `operation`, retrying transient store failures up to `attempts` times in total.
    When `session` is given it is rolled back after every failed attempt so the next one starts clean.
    """
    attempts = max(1, attempts if attempts is not None else settings.db_retry_attempts)
    base_delay = base_delay if base_delay is not None else settings.db_retry_base_delay
    max_delay = max_delay if max_delay is not None else settings.db_retry_max_delay

    def _before_sleep(retry_state: RetryCallState) -> None:
        if session is not None:
            session.rollback()
        logger.warning(
            "[DB Retry] %s failed (attempt %s/%s): %s; retrying in %.2fs",
            operation_name,
            retry_state.attempt_number,
            attempts,
            retry_state.outcome.exception().__class__.__name__,
            retry_state.next_action.sleep,
        )

    retrying = Retrying(
        stop=stop_after_attempt(attempts),
        wait=wait_exponential(multiplier=base_delay, max=max_delay),
        retry=retry_if_exception(is_transient_db_error),
        before_sleep=_before_sleep,
        sleep=sleep,
        reraise=True,
    )
    try:
        return retrying(operation)
    except sa_exc.SQLAlchemyError as e:
        if session is not None:
            session.rollback()
        logger.error("[DB Retry] %s failed: %s", operation_name, e.__class__.__name__)
        raise translate_db_error(e) from e


def db_retry(operation_name: str):
    """Decorator form for service functions whose first argument is the Session."""

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @functools.wraps(func)
        def wrapper(*args, **kwargs) -> T:
            session = args[0] if args and isinstance(args[0], Session) else kwargs.get("db")
            return with_db_retry(
                lambda: func(*args, **kwargs),
                session=session,
                operation_name=operation_name,
            )

        return wrapper

    return decorator
