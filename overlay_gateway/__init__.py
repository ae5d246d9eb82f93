from .app import GatewayConfig, create_app
from .orchestrator import BatchJob, BatchOrchestrator
from .webhook_notifier import WebhookNotifier

__all__ = [
    "GatewayConfig",
    "create_app",
    "BatchJob",
    "BatchOrchestrator",
    "WebhookNotifier",
]
