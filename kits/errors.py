"""
Kits Sync - Exceptions
Error kinds surfaced by the sheet reader, the repositories and the sync.
"""

from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError

logger = logging.getLogger(__name__)


class KitsError(Exception):
    """Base exception for kits sync errors."""

    kind = "error"

    def __init__(self, message: str, context: dict | None = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        base = super().__str__()
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{base} [{context_str}]"
        return base


class ProductNotFoundError(KitsError):
    """A kit references a product code that is not in the catalog."""

    kind = "not_found"

    def __init__(self, code: str):
        super().__init__(f"Product not found {code}")
        self.code = code


class KitNotFoundError(KitsError):
    kind = "not_found"

    def __init__(self, term: str):
        super().__init__("Kit not found", {"term": term})
        self.term = term


class ConflictError(KitsError):
    """Uniqueness violation or natural-key collision."""

    kind = "conflict"

    def __init__(self, detail: str, name: str | None = None):
        context = {"name": name} if name else {}
        super().__init__(detail, context)
        self.detail = detail
        self.name = name


class SheetError(KitsError):
    """The workbook could not be read or has no usable worksheet."""

    def __init__(self, message: str, filename: str | None = None):
        context = {"file": filename} if filename else {}
        super().__init__(message, context)
        self.filename = filename


class SyncFatalError(KitsError):
    """The whole sync was rolled back."""

    kind = "fatal"


def _integrity_detail(exc: IntegrityError) -> str:
    orig = getattr(exc, "orig", None)
    detail = getattr(orig, "diag", None)
    if detail is not None and getattr(detail, "message_detail", None):
        return str(detail.message_detail)
    return str(orig or exc)


def translate_db_error(exc: Exception) -> KitsError:
    """Uniqueness violations become ConflictError; the rest stays generic.

    Internal failures are logged here and reported without storage details.
    """
    if isinstance(exc, KitsError):
        return exc
    if isinstance(exc, IntegrityError):
        return ConflictError(_integrity_detail(exc))
    logger.error("Unexpected storage error", exc_info=exc)
    return KitsError("Unexpected error, check the logs")
