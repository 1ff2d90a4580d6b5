import functools
import logging

logger = logging.getLogger(__name__)

_DEPTH_KEY = "service_call_depth"

def transactional(method):
    """
    Make a service method the boundary of the session's transaction.

    Only the outermost service call on a session ends the transaction:
    it commits whatever is still open when it returns, reads included,
    and rolls back when it raises. Calls nested inside
    another service method, including those run in a savepoint, leave the
    transaction to their caller.
    """
    @functools.wraps(method)
    async def wrapper(self, db, *args, **kwargs):
        depth = db.info.get(_DEPTH_KEY, 0)
        db.info[_DEPTH_KEY] = depth + 1
        try:
            result = await method(self, db, *args, **kwargs)
            if depth == 0 and db.in_transaction():
                await db.commit()
            return result
        except Exception:
            if depth == 0:
                logger.debug(f"Rolling back after failed {method.__qualname__}")
                await db.rollback()
            raise
        finally:
            db.info[_DEPTH_KEY] = depth

    return wrapper
