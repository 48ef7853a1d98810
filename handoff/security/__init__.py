from .directory import Directory, InMemoryDirectory
from .policy import AccessDecision, AccessEvaluator

__all__ = [
    "Directory",
    "InMemoryDirectory",
    "AccessDecision",
    "AccessEvaluator",
]
