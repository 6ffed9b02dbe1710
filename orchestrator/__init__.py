from orchestrator.retry import DEFAULT_POLICY, RetryExecutor, RetryPolicy
from orchestrator.runner import CollectionOrchestrator, CollectorUnit, collect

__all__ = [
    "DEFAULT_POLICY",
    "RetryExecutor",
    "RetryPolicy",
    "CollectionOrchestrator",
    "CollectorUnit",
    "collect",
]
