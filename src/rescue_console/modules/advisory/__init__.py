"""Advisory trigger controller, client and forwarding proxy."""

from rescue_console.modules.advisory.client import AdvisoryClient, provider_payload
from rescue_console.modules.advisory.controller import AdvisoryTriggerController
from rescue_console.modules.advisory.extractors import (
    EXTRACTORS,
    build_request,
    extract_advice,
)
from rescue_console.modules.advisory.proxy import AdvisoryProxyServer, ChatForwarder
from rescue_console.modules.advisory.trigger import (
    DEFAULT_POLICY,
    FULL_COMPARISON_POLICY,
    TriggerPolicy,
    advance_reveal,
    complete_request,
    evaluate_trigger,
)

__all__ = [
    "AdvisoryClient",
    "AdvisoryProxyServer",
    "AdvisoryTriggerController",
    "ChatForwarder",
    "DEFAULT_POLICY",
    "EXTRACTORS",
    "FULL_COMPARISON_POLICY",
    "TriggerPolicy",
    "advance_reveal",
    "build_request",
    "complete_request",
    "evaluate_trigger",
    "extract_advice",
    "provider_payload",
]
