"""
Orchestration Package
Contains the relay orchestrator that wires the upstream client, cache, and broadcaster together
"""

from .relay_orchestrator import RelayOrchestrator, TopicRoute, TOPIC_ROUTES

__all__ = [
    'RelayOrchestrator',
    'TopicRoute',
    'TOPIC_ROUTES'
]
