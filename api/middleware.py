"""Request-scoped middleware for API requests."""

import logging
from uuid import UUID, uuid4

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse

from api.base import error_response, ErrorCodes
from utils.user_context import set_current_user_id, clear_current_user_id

logger = logging.getLogger(__name__)

STAFF_ID_HEADER = "X-Staff-Id"


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Assigns a unique request ID to every request."""

    async def dispatch(self, request: Request, call_next):
        request_id = str(uuid4())
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response


class StaffContextMiddleware(BaseHTTPMiddleware):
    """
    Attribute ledger writes to the staff member making the request.

    Authentication happens upstream; this only reads the staff id the
    gateway forwards and puts it in the user context for audit entries.
    Requests without the header are recorded with no user.
    """

    async def dispatch(self, request: Request, call_next):
        raw = request.headers.get(STAFF_ID_HEADER)
        staff_id = None

        if raw:
            try:
                staff_id = UUID(raw)
            except ValueError:
                return JSONResponse(
                    status_code=400,
                    content=error_response(
                        ErrorCodes.INVALID_REQUEST,
                        f"{STAFF_ID_HEADER} must be a UUID",
                        request_id=getattr(request.state, "request_id", None),
                    ).model_dump(mode="json"),
                )
            set_current_user_id(staff_id)

        request.state.user_id = staff_id

        try:
            return await call_next(request)
        finally:
            # Always clear context
            clear_current_user_id()
