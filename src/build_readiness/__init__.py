"""Build Readiness Service.

Stores the latest work item snapshot of each release and drafts structured
release approval requests from it with an LLM.
"""

__version__ = "0.1.0"
