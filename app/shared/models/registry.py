import importlib

from .base import Base

# Модули с моделями (без сервисов!), которые надо прогрузить для Base.metadata
MODEL_MODULES = [
    "app.domains.auth.models",
    "app.domains.content.models",
    "app.domains.audit.models",
    "app.domains.reports.models",
    "app.domains.moderation.models",
    "app.domains.transparency.models",
    "app.domains.appeals.models",
    "app.domains.sla.models",
]


def load_models():
    for mod in MODEL_MODULES:
        importlib.import_module(mod)
    return Base.metadata
