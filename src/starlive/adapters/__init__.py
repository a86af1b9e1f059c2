"""
Web Adapters

Transport integrations that expose live sessions over HTTP.

Key adapters:
- fasthtml: FastHTML page routes and a Datastar SSE event endpoint
"""

from .fasthtml import (
    LiveEndpoints, assign_state, client_script, configure_app, datastar_script, live_post,
)

__all__ = [
    "LiveEndpoints", "assign_state", "client_script", "configure_app", "datastar_script", "live_post",
]
