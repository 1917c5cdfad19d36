from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response, JSONResponse
import hashlib
from itc_recon.core.audit import audit_repo
from itc_recon.schemas.audit import AuditLogEntry, AuditStatus
import logging
import re
from typing import Callable, Optional

logger = logging.getLogger(__name__)

USER_HEADER = "X-User-ID"

# Checked in order; first fragment found in the path wins
ACTION_TYPES = [
    ("/explain", "EXPLAIN"),
    ("/authority", "IMPORT"),
    ("/books", "BOOKS"),
    ("/run", "RECONCILE"),
    ("/report", "REPORT"),
    ("/health", "HEALTH_CHECK"),
]

PUBLIC_PREFIXES = ["/health", "/docs", "/openapi.json"]

PERIOD_PATH = re.compile(r"^/reconciliation/([^/]+)")


def action_type_for(endpoint: str) -> str:
    for fragment, action_type in ACTION_TYPES:
        if fragment in endpoint:
            return action_type
    return "QUERY"


def period_for(endpoint: str) -> Optional[str]:
    match = PERIOD_PATH.match(endpoint)
    return match.group(1) if match else None


class AuditMiddleware(BaseHTTPMiddleware):
    """Records one audit entry per request, with SHA-256 hashes of the bodies."""

    async def dispatch(self, request: Request, call_next: Callable):
        endpoint = request.url.path
        method = request.method
        action_type = action_type_for(endpoint)
        period = period_for(endpoint)

        user_id = request.headers.get(USER_HEADER)
        is_public = endpoint == "/" or any(endpoint.startswith(p) for p in PUBLIC_PREFIXES)

        if not user_id and not is_public:
            response = JSONResponse(status_code=400, content={"detail": "Missing user identifier"})
            self._record(endpoint, method, action_type, "MISSING", period, None, None, AuditStatus.FAILURE, 400)
            return response

        if not user_id:
            user_id = "PUBLIC"

        request_body_bytes = await request.body()
        # Always hash the body, even if empty, for determinism
        input_hash = hashlib.sha256(request_body_bytes).hexdigest()

        # Re-inject body once, then hand back to the server so disconnects still arrive
        original_receive = request.receive
        replayed = False

        async def receive():
            nonlocal replayed
            if replayed:
                return await original_receive()
            replayed = True
            return {"type": "http.request", "body": request_body_bytes, "more_body": False}
        request._receive = receive

        status = AuditStatus.FAILURE
        output_hash = None
        status_code = None

        try:
            response = await call_next(request)
            status_code = response.status_code
            if 200 <= response.status_code < 300:
                status = AuditStatus.SUCCESS

            response_body_bytes = b""
            async for chunk in response.body_iterator:
                response_body_bytes += chunk
            output_hash = hashlib.sha256(response_body_bytes).hexdigest()

            response = Response(
                content=response_body_bytes,
                status_code=response.status_code,
                headers=dict(response.headers),
                media_type=response.media_type
            )
        finally:
            self._record(endpoint, method, action_type, user_id, period, input_hash, output_hash, status, status_code)

        return response

    @staticmethod
    def _record(endpoint, method, action_type, user_id, period, input_hash, output_hash, status, status_code):
        try:
            audit_repo.save(AuditLogEntry(
                endpoint=endpoint,
                method=method,
                action_type=action_type,
                user_id=user_id,
                period=period,
                input_hash=input_hash,
                output_hash=output_hash,
                status=status,
                status_code=status_code,
            ))
        except Exception as log_error:
            # Auditing must never break the request itself
            logger.error(f"Audit Logging Failed: {log_error}")
