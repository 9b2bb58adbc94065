import functools
import logging

from django.db import IntegrityError, OperationalError

from tracker.domain.exceptions import Conflict, Transient

logger = logging.getLogger(__name__)


def translate_store_errors(func):
    """
    Map database failures that escape a use case onto the domain taxonomy.

    The wrapped use case's transaction.atomic() block has already rolled
    back by the time the exception reaches this wrapper.
    """

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except OperationalError as exc:
            logger.warning("Store unavailable during %s: %s", func.__name__, exc)
            raise Transient(str(exc)) from exc
        except IntegrityError as exc:
            logger.warning("Unresolved constraint violation during %s: %s", func.__name__, exc)
            raise Conflict(str(exc)) from exc

    return wrapper
