"""候補生成"""

from .generator import Generator, TemplateGenerator

__all__ = ["Generator", "TemplateGenerator"]
