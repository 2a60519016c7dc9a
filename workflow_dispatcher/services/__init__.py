from .container import ServiceContainer, build_container
from .github_webhook import handle_github_event, verify_signature

__all__ = [
    "ServiceContainer",
    "build_container",
    "handle_github_event",
    "verify_signature",
]
