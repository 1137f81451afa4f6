"""
Procedure pipeline: cross-cutting checks composed around each operation.

Every router endpoint runs its service call through a ``Pipeline``.  A
pipeline is an ordered list of steps; each step receives the caller
context, the procedure path (``"post.publish"``) and a ``call_next``
coroutine factory, and decides whether and how to continue::

    Log -> Authenticate -> Authorize(role) -> service function

Identity comes from the transport (``X-User-Id`` / ``X-User-Role``
headers); verifying credentials is outside this service.
"""
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Protocol, TypeVar

from fastapi import Request

from app.errors import DomainError, ForbiddenError, UnauthorizedError
from app.middleware import request_id_var
from app.models import Role

logger = logging.getLogger(__name__)

T = TypeVar("T")
CallNext = Callable[[], Awaitable[Any]]


@dataclass(frozen=True)
class ProcedureContext:
    user_id: str | None = None
    user_role: str | None = None


async def get_procedure_context(request: Request) -> ProcedureContext:
    """FastAPI dependency building the caller context from request headers."""
    return ProcedureContext(
        user_id=request.headers.get("x-user-id") or None,
        user_role=request.headers.get("x-user-role") or None,
    )


class Step(Protocol):
    async def __call__(self, ctx: ProcedureContext, path: str, call_next: CallNext) -> Any: ...


class Log:
    """Records outcome and duration of every procedure call."""

    async def __call__(self, ctx: ProcedureContext, path: str, call_next: CallNext) -> Any:
        start = time.perf_counter()
        try:
            result = await call_next()
        except DomainError as exc:
            logger.warning(
                "%s - %s (%dms) request_id=%s: %s",
                path,
                exc.code,
                (time.perf_counter() - start) * 1000,
                request_id_var.get(),
                exc.message,
            )
            raise
        except Exception:
            logger.exception(
                "%s - ERROR (%dms) request_id=%s",
                path,
                (time.perf_counter() - start) * 1000,
                request_id_var.get(),
            )
            raise
        logger.info("%s - OK (%dms)", path, (time.perf_counter() - start) * 1000)
        return result


class Authenticate:
    """Rejects callers without an identity."""

    async def __call__(self, ctx: ProcedureContext, path: str, call_next: CallNext) -> Any:
        if not ctx.user_id:
            raise UnauthorizedError("You must be logged in to perform this action")
        return await call_next()


class Authorize:
    """Rejects callers whose role is not *role*."""

    def __init__(self, role: Role) -> None:
        self.role = role

    async def __call__(self, ctx: ProcedureContext, path: str, call_next: CallNext) -> Any:
        if not ctx.user_id or ctx.user_role != self.role.value:
            raise ForbiddenError(f"Only {self.role.value.lower()}s can perform this action")
        return await call_next()


class Pipeline:
    def __init__(self, *steps: Step) -> None:
        self.steps = steps

    async def run(self, path: str, ctx: ProcedureContext, call: Callable[[], Awaitable[T]]) -> T:
        """Invoke *call* through every step, outermost first."""

        async def dispatch(index: int) -> Any:
            if index == len(self.steps):
                return await call()
            return await self.steps[index](ctx, path, lambda: dispatch(index + 1))

        return await dispatch(0)


public_procedure = Pipeline(Log())
protected_procedure = Pipeline(Log(), Authenticate())
admin_procedure = Pipeline(Log(), Authenticate(), Authorize(Role.ADMIN))
