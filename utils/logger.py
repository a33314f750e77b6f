"""Logging for the waitlist API and the signup form client"""
import logging
import os
import sys

# Configured once per process; LOG_LEVEL picks the threshold
log_level = os.environ.get('LOG_LEVEL', 'INFO').upper()
logging.basicConfig(
    level=getattr(logging, log_level, logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.StreamHandler(sys.stdout)
    ]
)

logger = logging.getLogger('waitlist')


def get_logger(name: str) -> logging.Logger:
    """Child logger under the application logger (e.g. 'waitlist.signup_form')"""
    return logger.getChild(name)


def _with_context(message: str, context: dict) -> str:
    """Append key=value pairs (user_id, step, ...) to a log message"""
    if not context:
        return message
    pairs = ' '.join(f"{key}={value}" for key, value in context.items() if value is not None)
    return f"{message} [{pairs}]" if pairs else message


def log_error(message: str, error: Exception = None, traceback_str: str = None, **context):
    """Log error with optional exception and traceback"""
    message = _with_context(message, context)
    if error:
        logger.error(f"{message}: {str(error)}", exc_info=error)
    elif traceback_str:
        logger.error(f"{message}\n{traceback_str}")
    else:
        logger.error(message)


def log_warning(message: str, **context):
    logger.warning(_with_context(message, context))


def log_info(message: str, **context):
    logger.info(_with_context(message, context))


def log_debug(message: str, **context):
    """Only emitted with LOG_LEVEL=DEBUG"""
    logger.debug(_with_context(message, context))


def log_step_failure(step: str, user_id: str, error: Exception):
    """A best-effort signup step failed; the signup itself still succeeded"""
    log_warning(f"Signup step '{step}' failed: {str(error)}", step=step, user_id=user_id)
