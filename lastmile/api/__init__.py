"""REST client for the delivery backend."""

from lastmile.api.agent import AgentAPI, AgentBackend
from lastmile.api.client import BackendClient

__all__ = ["AgentAPI", "AgentBackend", "BackendClient"]
