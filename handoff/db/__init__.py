from .models import ConnectionRow, NodeRow, TemplateRow
from .store import InMemoryTemplateStore, TemplateStore
from .template_db import TemplateDB

__all__ = [
    "TemplateRow",
    "NodeRow",
    "ConnectionRow",
    "TemplateStore",
    "InMemoryTemplateStore",
    "TemplateDB",
]
