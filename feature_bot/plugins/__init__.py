from .loader import PluginLoader
from .template_handler import TemplateHandler, build_handler_spec

__all__ = ["PluginLoader", "TemplateHandler", "build_handler_spec"]
