from services.audit_service.pipeline.barrier import BarrierPolicy, CompletionBarrier
from services.audit_service.pipeline.dispatcher import CheckDispatcher, applicable_checks
from services.audit_service.pipeline.executor import CheckExecutor
from services.audit_service.pipeline.orchestrator import AuditOrchestrator
from services.audit_service.pipeline.registry import (
    AIStrategy,
    CheckRegistry,
    DeterministicStrategy,
    load_registry,
)
from services.audit_service.pipeline.synthesizer import ResultAggregator

__all__ = [
    "AIStrategy",
    "AuditOrchestrator",
    "BarrierPolicy",
    "CheckDispatcher",
    "CheckExecutor",
    "CheckRegistry",
    "CompletionBarrier",
    "DeterministicStrategy",
    "ResultAggregator",
    "applicable_checks",
    "load_registry",
]
