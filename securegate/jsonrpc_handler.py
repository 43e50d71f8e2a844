"""
JSONRPCHandler module for securegate
Maps JSON-RPC 2.0 requests onto the translation pipeline and approval workflow
"""
import logging
from typing import Any, Callable, Dict, List, Optional

from .approval_workflow import ApprovalWorkflow
from .circuit_breaker import CircuitBreakerRegistry
from .errors import (
    AuthorizationDenied,
    CircuitBreakerOpenError,
    IllegalTransitionError,
    RecordNotFoundError,
    SecurityException,
    ValidationError,
)
from .invoker import SecureTranslationInvoker
from .publication import PublicationGate
from .review_queue import ReviewQueue
from .security.log_sanitizer import sanitize_for_logging
from .session_manager import SessionManager
from .size_guard import DocumentSizeGuard

logger = logging.getLogger(__name__)

INVALID_PARAMS = -32602
METHOD_NOT_FOUND = -32601
INTERNAL_ERROR = -32603
AUTHORIZATION_DENIED = -32001
SECURITY_REVIEW_REQUIRED = -32002
SERVICE_UNAVAILABLE = -32003


class JSONRPCHandler:
    """Handles JSON-RPC protocol wrapping"""

    def __init__(
        self,
        invoker: SecureTranslationInvoker,
        gate: PublicationGate,
        workflow: ApprovalWorkflow,
        review_queue: ReviewQueue,
        sessions: SessionManager,
        breakers: CircuitBreakerRegistry,
    ):
        self.invoker = invoker
        self.gate = gate
        self.workflow = workflow
        self.review_queue = review_queue
        self.sessions = sessions
        self.breakers = breakers
        self._method_handlers = self._setup_method_handlers()

    def _setup_method_handlers(self) -> Dict[str, Callable]:
        """Setup mapping of methods to handlers"""
        return {
            "translate": self.handle_translate,
            "approve": self.handle_approve,
            "reject": self.handle_reject,
            "publish": self.handle_publish,
            "approvals/pending": self.handle_pending_approvals,
            "reviews/pending": self.handle_pending_reviews,
            "sessions/create": self.handle_create_session,
            "breakers/stats": self.handle_breaker_stats,
        }

    async def handle_request(self, data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Handle incoming JSON-RPC request"""
        method = data.get("method", "")
        params = data.get("params") or {}

        # Check if this is a notification (no id field)
        if "id" not in data:
            logger.info(f"Received notification: {method}")
            return None

        request_id = data.get("id")

        if not (handler := self._method_handlers.get(method)):
            return self._create_error_response(request_id, METHOD_NOT_FOUND, f"Method not found: {method}")

        try:
            if not isinstance(params, dict):
                raise ValidationError("params must be an object")
            response = await handler(params)
            return self._create_success_response(request_id, response)

        except (ValidationError, RecordNotFoundError, IllegalTransitionError) as e:
            details = getattr(e, "details", None)
            return self._create_error_response(request_id, INVALID_PARAMS, str(e), details or None)
        except AuthorizationDenied as e:
            return self._create_error_response(request_id, AUTHORIZATION_DENIED, str(e))
        except SecurityException as e:
            return self._create_error_response(
                request_id, SECURITY_REVIEW_REQUIRED, str(e),
                {"review_id": e.review_id, "issues": e.issues}
            )
        except CircuitBreakerOpenError as e:
            return self._create_error_response(
                request_id, SERVICE_UNAVAILABLE,
                "Service temporarily unavailable, retry later",
                {"service": e.service_name}
            )
        except Exception as e:
            logger.error(f"Error handling request {method}: {type(e).__name__}", exc_info=True)
            return self._create_error_response(
                request_id,
                INTERNAL_ERROR,
                "Internal error",
                sanitize_for_logging(str(e))
            )

    @staticmethod
    def _require(params: Dict[str, Any], key: str) -> Any:
        if (value := params.get(key)) in (None, ""):
            raise ValidationError(f"Missing required parameter: {key}")
        return value

    def _require_session(self, params: Dict[str, Any], user_id: str) -> None:
        """Count the request against the caller's session when one is given"""
        if not (session_id := params.get("session_id")):
            return
        session = self.sessions.get_session(session_id)
        if session is None or session.user_id != user_id or not self.sessions.record_action(session_id):
            raise AuthorizationDenied(user_id, "use this session", reason="session expired or action limit reached")

    async def handle_translate(self, params: Dict[str, Any]) -> Dict[str, Any]:
        user_id = self._require(params, "user_id")
        self._require_session(params, user_id)

        paths = self._require(params, "paths")
        if isinstance(paths, str):
            paths = [p.strip() for p in paths.split(",") if p.strip()]
        format_name = params.get("format", "unified")
        audience = params.get("audience", "all stakeholders")

        for name, value in (("format", format_name), ("audience", audience)):
            if isinstance(value, str) and not (check := DocumentSizeGuard.validate_parameter_length(name, value)).valid:
                raise ValidationError(check.error, check.details)

        result = await self.invoker.translate(paths, format_name, audience, user_id, params.get("username"))
        return result.to_dict()

    async def handle_approve(self, params: Dict[str, Any]) -> Dict[str, Any]:
        user_id = self._require(params, "user_id")
        self._require_session(params, user_id)
        record = await self.gate.approve(
            self._require(params, "summary_id"), user_id, params.get("username"),
            params.get("notes"), params.get("metadata")
        )
        return self._summarize_record(record.summary_id)

    async def handle_reject(self, params: Dict[str, Any]) -> Dict[str, Any]:
        user_id = self._require(params, "user_id")
        self._require_session(params, user_id)
        record = await self.gate.reject(
            self._require(params, "summary_id"), user_id, params.get("username"), params.get("notes")
        )
        return self._summarize_record(record.summary_id)

    async def handle_publish(self, params: Dict[str, Any]) -> Dict[str, Any]:
        user_id = self._require(params, "user_id")
        self._require_session(params, user_id)
        record = await self.gate.publish(self._require(params, "summary_id"), user_id, params.get("username"))
        return {**self._summarize_record(record.summary_id), "content": record.content}

    async def handle_pending_approvals(self, params: Dict[str, Any]) -> List[Dict[str, Any]]:
        return [self._summarize_record(r.summary_id) for r in self.workflow.get_pending_approvals()]

    async def handle_pending_reviews(self, params: Dict[str, Any]) -> List[Dict[str, Any]]:
        return [
            {
                "review_id": item.review_id,
                "reason": item.reason,
                "issues": item.issues,
                "requested_by": item.requested_by,
                "created_at": item.created_at.isoformat(),
            }
            for item in self.review_queue.get_pending()
        ]

    async def handle_create_session(self, params: Dict[str, Any]) -> Dict[str, Any]:
        session = self.sessions.create_session(self._require(params, "user_id"), params.get("metadata"))
        return {"session_id": session.session_id, "expires_at": session.expires_at}

    async def handle_breaker_stats(self, params: Dict[str, Any]) -> Dict[str, Any]:
        return self.breakers.get_all_stats()

    def _summarize_record(self, summary_id: str) -> Dict[str, Any]:
        record = self.workflow.get_record(summary_id)
        if record is None:
            raise RecordNotFoundError(summary_id)
        return {
            "summary_id": record.summary_id,
            "state": record.current_state.value,
            "format": record.format,
            "audience": record.audience,
            "distinct_approvals": self.workflow.count_distinct_approvers(summary_id),
            "created_at": record.created_at.isoformat(),
            "updated_at": record.updated_at.isoformat(),
        }

    def _create_success_response(self, request_id: Any, result: Any) -> Dict[str, Any]:
        """Create a successful JSON-RPC response"""
        return {
            "jsonrpc": "2.0",
            "id": request_id,
            "result": result
        }

    def _create_error_response(
        self,
        request_id: Any,
        code: int,
        message: str,
        data: Optional[Any] = None
    ) -> Dict[str, Any]:
        """Create an error JSON-RPC response"""
        error: Dict[str, Any] = {
            "code": code,
            "message": message
        }

        if data:
            error["data"] = data

        return {
            "jsonrpc": "2.0",
            "id": request_id,
            "error": error
        }
