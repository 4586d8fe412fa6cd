"""Common utilities for EloBoard."""

import os
import json
import math
import logging
import asyncio
from datetime import datetime
from typing import Optional, Any, Callable, Awaitable, TypeVar
from functools import wraps

import pytz
from filelock import FileLock


# Time Utilities
def get_local_now(tz_name: str) -> datetime:
    """Get the current time in the given time zone."""
    return datetime.now(pytz.timezone(tz_name))


def format_local_datetime(epoch_seconds: Optional[int], tz_name: str,
                          format_str: str = '%Y-%m-%d %H:%M',
                          default: str = "—") -> str:
    """Format UNIX seconds for display in the given time zone."""
    if not epoch_seconds:
        return default
    dt = datetime.fromtimestamp(epoch_seconds, tz=pytz.utc)
    return dt.astimezone(pytz.timezone(tz_name)).strftime(format_str)


def parse_epoch_millis(value: Any) -> Optional[int]:
    """Convert an epoch-milliseconds value to whole seconds, None if not numeric."""
    number = to_number(value)
    if number is None:
        return None
    return int(math.floor(number / 1000))


# Number Utilities
def to_number(value: Any) -> Optional[float]:
    """Parse a number from an API field, returning None for anything malformed."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        try:
            number = float(str(value).strip().replace(',', ''))
        except ValueError:
            return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def safe_float(value: Any, default: float = 0.0) -> float:
    """Coerce a value to float, malformed values become the default."""
    number = to_number(value)
    return default if number is None else number


def safe_int(value: Any, default: int = 0) -> int:
    """Coerce a value to int (truncating), malformed values become the default."""
    number = to_number(value)
    return default if number is None else int(number)


def round_half_up(value: float) -> int:
    """Round to the nearest integer with halves rounded up."""
    return int(math.floor(value + 0.5))


def format_ratio(numerator: float, denominator: float, digits: int = 2) -> str:
    """Format numerator/denominator with fixed decimals, zero when undefined."""
    if not denominator:
        return f"{0:.{digits}f}"
    return f"{numerator / denominator:.{digits}f}"


# File/Directory Utilities
def ensure_directory_exists(path: str) -> None:
    """Ensure directory exists, create if it doesn't."""
    if not os.path.exists(path):
        os.makedirs(path)
        logging.info(f"Created directory: {path}")


def safe_json_load(filepath: str, default: Any = None) -> Any:
    """Load JSON file with error handling."""
    try:
        with open(filepath, 'r', encoding='utf-8') as f:
            return json.load(f)
    except FileNotFoundError:
        logging.debug(f"File not found: {filepath}, returning default")
        return default
    except json.JSONDecodeError as e:
        logging.error(f"JSON decode error in {filepath}: {e}")
        return default
    except Exception as e:
        logging.error(f"Error loading {filepath}: {e}")
        return default


def safe_json_save(filepath: str, data: Any, indent: int = 2) -> bool:
    """Save JSON file with atomic write and error handling."""
    temp_file = f"{filepath}.tmp"
    try:
        with FileLock(f"{filepath}.lock"):
            # Write to temp file first
            with open(temp_file, 'w', encoding='utf-8') as f:
                json.dump(data, f, indent=indent, ensure_ascii=False)

            # Atomic rename
            os.replace(temp_file, filepath)
        return True
    except Exception as e:
        logging.error(f"Error saving {filepath}: {e}")
        # Clean up temp file if it exists
        if os.path.exists(temp_file):
            try:
                os.remove(temp_file)
            except OSError:
                pass
        return False


# Error Handling Utilities
def log_error(action: str, error: Exception, level: int = logging.ERROR) -> None:
    """Standardized error logging."""
    logging.log(level, f"Error {action}: {type(error).__name__}: {str(error)}")


# Async Utilities
F = TypeVar('F', bound=Callable[..., Awaitable[Any]])

def async_retry(max_retries: int = 3, delay: float = 1.0, backoff: float = 2.0) -> Callable[[F], F]:
    """Decorator for async functions with retry logic."""
    def decorator(func: F) -> F:
        @wraps(func)
        async def wrapper(*args, **kwargs) -> Any:
            last_error = None
            wait_time = delay

            for attempt in range(max_retries):
                try:
                    return await func(*args, **kwargs)
                except Exception as e:
                    last_error = e
                    if attempt < max_retries - 1:
                        logging.warning(f"{func.__name__} attempt {attempt + 1} failed: {e}")
                        await asyncio.sleep(wait_time)
                        wait_time *= backoff
                    else:
                        raise

            raise last_error
        return wrapper  # type: ignore
    return decorator
