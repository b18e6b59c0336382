"""
Discriminated results for service operations.

Every engine operation returns an ActionResult instead of raising. Expected
rule violations surface as failures with a short reason; store failures are
rolled back and reported with kind "persistence".
"""
import logging
from dataclasses import dataclass, field
from functools import wraps
from typing import Any, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from olympia.exceptions import OlympiaError

logger = logging.getLogger(__name__)


@dataclass
class ActionResult:
    ok: bool
    message: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)
    error_kind: Optional[str] = None

    @classmethod
    def success(cls, message: Optional[str] = None, **data: Any) -> "ActionResult":
        return cls(ok=True, message=message, data=data)

    @classmethod
    def failure(cls, kind: str, message: str) -> "ActionResult":
        return cls(ok=False, message=message, error_kind=kind)

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"success": self.ok}
        if self.message:
            result["message"] = self.message
        if self.ok:
            result["data"] = self.data
        else:
            result["error_kind"] = self.error_kind
        return result


def service_action(func):
    """
    Wrap an async service operation so it always returns an ActionResult.

    The wrapped function receives the AsyncSession as its first argument.
    On any failure the session is rolled back before the result is built.
    """

    @wraps(func)
    async def wrapper(db, *args, **kwargs) -> ActionResult:
        try:
            return await func(db, *args, **kwargs)
        except OlympiaError as exc:
            await db.rollback()
            identifier = getattr(exc, "identifier", None)
            detail = f" [id={identifier}]" if identifier is not None else ""
            logger.info(f"{func.__name__} rejected ({exc.kind}): {exc.message}{detail}")
            return ActionResult.failure(exc.kind, exc.message)
        except StaleDataError as exc:
            await db.rollback()
            logger.warning(f"{func.__name__} lost a concurrent update: {exc}")
            return ActionResult.failure(
                "precondition",
                "The session was changed by another action. Please retry.",
            )
        except SQLAlchemyError as exc:
            await db.rollback()
            logger.error(f"{func.__name__} persistence failure: {type(exc).__name__}: {exc}")
            return ActionResult.failure("persistence", "Could not save changes. Please retry.")

    return wrapper
