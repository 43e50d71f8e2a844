"""
securegate Package
Security-gated content transformation pipeline
"""
from .approval_workflow import ApprovalWorkflow
from .audit_logger import AuditLogger, JsonLinesAuditSink, MemoryAuditSink, SecurityEventType
from .circuit_breaker import CircuitBreaker, CircuitBreakerRegistry
from .config import ConfigurationError, ConfigurationManager, GatewayConfig, SecurityPolicyError
from .errors import (
    AuthorizationDenied,
    CircuitBreakerOpenError,
    IllegalTransitionError,
    RecordNotFoundError,
    SecretRejection,
    SecureGateError,
    SecurityException,
    ValidationError,
)
from .input_validator import InputValidator
from .invoker import DocumentLoader, SecureTranslationInvoker
from .publication import PublicationGate
from .rbac import RBAC, RoleLookup, StaticRoleLookup
from .review_queue import ReviewQueue
from .session_manager import SessionManager
from .size_guard import DocumentSizeGuard
from .store import InMemoryRepository, Repository
from .utils import substitute_env_vars

__all__ = [
    'ApprovalWorkflow',
    'AuditLogger',
    'JsonLinesAuditSink',
    'MemoryAuditSink',
    'SecurityEventType',
    'CircuitBreaker',
    'CircuitBreakerRegistry',
    'ConfigurationError',
    'ConfigurationManager',
    'GatewayConfig',
    'SecurityPolicyError',
    'AuthorizationDenied',
    'CircuitBreakerOpenError',
    'IllegalTransitionError',
    'RecordNotFoundError',
    'SecretRejection',
    'SecureGateError',
    'SecurityException',
    'ValidationError',
    'InputValidator',
    'DocumentLoader',
    'SecureTranslationInvoker',
    'PublicationGate',
    'RBAC',
    'RoleLookup',
    'StaticRoleLookup',
    'ReviewQueue',
    'SessionManager',
    'DocumentSizeGuard',
    'InMemoryRepository',
    'Repository',
    'substitute_env_vars',
]
