import functools
import traceback
import sys


def _find_logger(args, kwargs):
    # Duck typing on .log instead of importing Logger (avoids circular imports)
    if 'logger' in kwargs:
        return kwargs['logger']
    if args and hasattr(args[0], 'logger'):
        return args[0].logger
    for arg in args:
        if hasattr(arg, 'log') and callable(arg.log):
            return arg
    return None


def safe_execute(func=None, *, default=None):
    """
    Decorator for optional work (post-session plotting) that must never
    change how the session ends. Errors are reported through the logger
    found in the call arguments, or stderr, and `default` is returned.

    Usable bare (@safe_execute) or with arguments (@safe_execute(default=False)).
    """
    if func is None:
        return functools.partial(safe_execute, default=default)

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except Exception as e:
            logger = _find_logger(args, kwargs)
            error_msg = f"SAFETY CATCH: Error in {func.__name__}: {e}"
            if logger is not None and hasattr(logger, 'error'):
                logger.error(error_msg)
            elif logger is not None:
                logger.log(error_msg)
            else:
                print(error_msg, file=sys.stderr)
                print(traceback.format_exc(), file=sys.stderr)
            return default
    return wrapper
