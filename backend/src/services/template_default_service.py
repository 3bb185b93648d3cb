"""
Default-template promotion for medical record templates.

Within a (tenant, template_type, specialty) bucket at most one active
template may have is_default=True. Every create/update that leaves a template
active and default goes through TemplateDefaultService.promote, which demotes
the other defaults of the bucket and writes the target in one transaction.

Concurrent promotions into the same bucket are serialized by row locks on
the competing defaults plus the partial unique index on the bucket; the loser
gets TemplateTransactionConflictError and the whole operation is retried by
retry_on_default_conflict.
"""

import functools
import logging
import time
from contextlib import contextmanager
from typing import Any, Callable, Dict, Generator, Optional, TypeVar

from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from core.config import TEMPLATE_DEFAULT_PROMOTION_MAX_RETRIES
from models import MedicalRecordTemplate
from services.template_exceptions import (
    TemplatePersistenceError,
    TemplateTransactionConflictError,
)
from utils.datetime_utils import utc_now
from utils.template_queries import count_active_defaults, filter_active_defaults, filter_template_bucket

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])

DEFAULT_BUCKET_INDEX_NAME = "uq_medical_record_templates_default_bucket"

# serialization_failure, deadlock_detected, lock_not_available
_CONFLICT_PGCODES = {"40001", "40P01", "55P03"}


def _is_default_bucket_violation(error: IntegrityError) -> bool:
    return DEFAULT_BUCKET_INDEX_NAME in str(error.orig)


def _is_lock_conflict(error: OperationalError) -> bool:
    pgcode = getattr(error.orig, "pgcode", None)
    if pgcode in _CONFLICT_PGCODES:
        return True
    return "database is locked" in str(error.orig)


@contextmanager
def template_transaction(db: Session, action: str) -> Generator[Session, None, None]:
    """
    Run a block of template writes and commit it, translating storage errors.

    On any failure the session is rolled back. Losing a race on the
    default bucket becomes TemplateTransactionConflictError; every other
    database error becomes TemplatePersistenceError with the original error
    attached.
    """
    try:
        yield db
        db.commit()
    except IntegrityError as e:
        db.rollback()
        if _is_default_bucket_violation(e):
            raise TemplateTransactionConflictError(f"Concurrent default promotion while trying to {action}") from e
        raise TemplatePersistenceError(f"Failed to {action}", e) from e
    except OperationalError as e:
        db.rollback()
        if _is_lock_conflict(e):
            raise TemplateTransactionConflictError(f"Template bucket is locked while trying to {action}") from e
        logger.exception(f"Database error while trying to {action}: {e}")
        raise TemplatePersistenceError(f"Failed to {action}", e) from e
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception(f"Database error while trying to {action}: {e}")
        raise TemplatePersistenceError(f"Failed to {action}", e) from e
    except Exception:
        db.rollback()
        raise


def retry_on_default_conflict(max_retries: Optional[int] = None, base_delay: float = 0.05) -> Callable[[F], F]:
    """
    Decorator to retry a template write that lost a default-promotion race.

    The decorated function must be safe to re-run from scratch (it reloads
    whatever it mutates), since the failed attempt has been rolled back.

    Args:
        max_retries: Retries after the first attempt (defaults to config)
        base_delay: Base delay in seconds (exponential backoff)
    """
    retries = TEMPLATE_DEFAULT_PROMOTION_MAX_RETRIES if max_retries is None else max_retries

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            for attempt in range(retries + 1):
                try:
                    return func(*args, **kwargs)
                except TemplateTransactionConflictError as e:
                    if attempt >= retries:
                        raise
                    delay = base_delay * (2 ** attempt)
                    logger.warning(
                        f"Default promotion conflict in {func.__name__} "
                        f"(attempt {attempt + 1}/{retries + 1}), retrying in {delay:.2f} seconds: {e}"
                    )
                    time.sleep(delay)
            raise AssertionError("unreachable")
        return wrapper  # type: ignore[return-value]
    return decorator


class TemplateDefaultService:
    """Keeps the one-active-default-per-bucket invariant."""

    @staticmethod
    def demote_other_defaults(
        db: Session,
        tenant_id: str,
        template_type: str,
        specialty: Optional[str],
        keep_template_id: Optional[int],
        updated_by: Optional[int],
    ) -> int:
        """
        Unset is_default on every other active default in the bucket.

        Competing rows are locked (SELECT ... FOR UPDATE) before they are
        changed and the changes are flushed immediately, so the target can be
        written afterwards in the same transaction.

        Returns:
            Number of templates demoted
        """
        query = filter_active_defaults(
            filter_template_bucket(db.query(MedicalRecordTemplate), tenant_id, template_type, specialty)
        )
        if keep_template_id is not None:
            query = query.filter(MedicalRecordTemplate.id != keep_template_id)

        others = query.with_for_update().all()
        now = utc_now()
        for other in others:
            other.is_default = False
            other.updated_by = updated_by
            other.updated_at = now
        db.flush()
        return len(others)

    @staticmethod
    def promote(
        db: Session,
        template: MedicalRecordTemplate,
        updated_by: Optional[int],
        changes: Optional[Dict[str, Any]] = None,
    ) -> MedicalRecordTemplate:
        """
        Make `template` the single active default of its bucket.

        Must be called inside template_transaction so that the demotion and
        the write of the target commit or roll back together. `template` is
        either a new instance not yet added to the session or a persistent
        one without pending changes; updates to apply to it are passed as
        `changes`; they are written only after the competitors of the bucket
        they describe have been demoted.
        """
        changes = changes or {}
        demoted = TemplateDefaultService.demote_other_defaults(
            db,
            tenant_id=template.tenant_id,
            template_type=changes.get("template_type", template.template_type),
            specialty=changes.get("specialty", template.specialty),
            keep_template_id=template.id,
            updated_by=updated_by,
        )
        for key, value in changes.items():
            setattr(template, key, value)
        template.is_default = True
        db.add(template)
        db.flush()
        if demoted:
            logger.info(
                f"Promoted template {template.id} to default for tenant {template.tenant_id} "
                f"({template.template_type}, {template.specialty}); demoted {demoted} other template(s)"
            )
        return template

    @staticmethod
    def bucket_has_default(
        db: Session,
        tenant_id: str,
        template_type: str,
        specialty: Optional[str],
    ) -> bool:
        """Whether the bucket already has an active default template."""
        return count_active_defaults(db, tenant_id, template_type, specialty) > 0
