# Templates: Katalog und Renderer
from .renderer import RenderedPrompt, TemplateRenderer
from .store import TemplateStore

__all__ = ["RenderedPrompt", "TemplateRenderer", "TemplateStore"]
