"""Board engine for aikanban: response normalization and task state reconciliation."""

from aikanban.engine.normalizer import ResponseSchema, normalize_response, parse_json_payload
from aikanban.engine.mutations import BoardState
from aikanban.engine.reconciler import TaskReconciler, TaskStore, MutationResult
from aikanban.engine.requests import RequestScope, RequestToken

__all__ = [
    "ResponseSchema",
    "normalize_response",
    "parse_json_payload",
    "BoardState",
    "TaskReconciler",
    "TaskStore",
    "MutationResult",
    "RequestScope",
    "RequestToken",
]
