"""
Orchestration package for coordinating publishing pipeline phases.

This package provides the orchestration layer that sequences the publishing
phases: Theme → Images → HTML / Bundle / Markdown payload.
"""

from .publish_orchestrator import PublishOrchestrator

__all__ = [
    'PublishOrchestrator'
]
