from .concurrency import run_with_concurrency
from .orchestrator import BatchOrchestrator, PipelineConfig, RunPhase, RunReport
from .parser import ParseResult, RecoveredResponse, parse_response, recover_response, repair_truncated_json
from .retry import RetryPolicy, retry_with_backoff
from .throttle import Throttle
from .validator import resolve_default_category, validate_outcomes

__all__ = [
    "BatchOrchestrator",
    "ParseResult",
    "PipelineConfig",
    "RecoveredResponse",
    "RetryPolicy",
    "RunPhase",
    "RunReport",
    "Throttle",
    "parse_response",
    "recover_response",
    "repair_truncated_json",
    "resolve_default_category",
    "retry_with_backoff",
    "run_with_concurrency",
    "validate_outcomes",
]
