"""Recording and synchronization wiring."""

from app.orchestrator.sync_orchestrator import SyncOrchestrator, build_orchestrator

__all__ = ["SyncOrchestrator", "build_orchestrator"]
