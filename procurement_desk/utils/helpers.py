"""Shared parsing and persistence helpers.

parse_date:       returns None on bad input (ticket fields are free-form)
parse_timestamp:  ticket-store ISO timestamps → aware datetime
add_months:       calendar month arithmetic, clamped to the last day
parse_int:        tolerant int coercion for count fields
parse_decimal:    money fields, rejects garbage with ValueError
commit_or_raise:  commit the session or roll back and raise PersistenceError
"""
import calendar
import logging
from datetime import date, datetime
from decimal import Decimal, InvalidOperation

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from procurement_desk.core.exceptions import PersistenceError
from procurement_desk.models import db

logger = logging.getLogger(__name__)


def parse_date(value):
    """Parse a date string (ISO or DD.MM.YYYY) to a date object.

    Returns None for empty/invalid input. Supports:
    - YYYY-MM-DD (ISO format)
    - YYYY-MM-DDTHH:MM:SS[.fff][+zzzz] (datetime ISO → .date())
    - DD.MM.YYYY (European format)
    """
    if not value:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except (ValueError, TypeError):
        pass
    stamp = parse_timestamp(value)
    if stamp is not None:
        return stamp.date()
    try:
        return datetime.strptime(str(value), "%d.%m.%Y").date()
    except (ValueError, TypeError):
        return None


def parse_timestamp(value):
    """Parse a ticket-store timestamp such as ``2024-01-15T10:22:33.000+0000``.

    Returns None when the value is missing or unparsable.
    """
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    val = str(value).strip()
    for fmt in ("%Y-%m-%dT%H:%M:%S.%f%z", "%Y-%m-%dT%H:%M:%S%z", "%Y-%m-%dT%H:%M:%S.%f", "%Y-%m-%dT%H:%M:%S"):
        try:
            return datetime.strptime(val, fmt)
        except ValueError:
            continue
    try:
        return datetime.fromisoformat(val)
    except ValueError:
        logger.debug("Unparsable timestamp %r", value)
        return None


def add_months(start, months):
    """Return ``start`` shifted by ``months``; Jan 31 + 1 month is Feb 28/29."""
    index = start.month - 1 + months
    year, month = start.year + index // 12, index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return start.replace(year=year, month=month, day=day)


def parse_int(value):
    """Coerce ticket field values like ``"12"``, ``12.0`` or ``" 3 "`` to int; None otherwise."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    try:
        return int(Decimal(str(value).strip()))
    except (InvalidOperation, ValueError, OverflowError):
        return None


def parse_decimal(value, field_name="value"):
    """Convert a JSON number/string to Decimal.

    Raises:
        ValueError: when the value cannot be interpreted as a number.
    """
    if value is None:
        return None
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValueError(f"{field_name} must be a number")
    try:
        # str() first so floats keep their printed precision
        result = Decimal(str(value).strip())
    except InvalidOperation as exc:
        raise ValueError(f"{field_name} must be a number") from exc
    if not result.is_finite():
        raise ValueError(f"{field_name} must be a finite number")
    return result


# ── Database commit helper ───────────────────────────────────────────────────

def commit_or_raise(what="record"):
    """Commit the current SQLAlchemy session or roll back and raise PersistenceError.

    Services call this instead of ``db.session.commit()`` so a failed write
    never leaves partial state in the session.

    IntegrityError → PersistenceError (logged as warning)
    Other SQLAlchemyError → PersistenceError (logged with traceback)
    """
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        logger.warning("Integrity error writing %s: %s", what, exc.orig)
        raise PersistenceError(f"Could not save {what}: constraint violation") from exc
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception("Database error writing %s", what)
        raise PersistenceError(f"Could not save {what}") from exc
