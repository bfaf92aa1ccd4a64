from . import analyses, webhook

__all__ = ["analyses", "webhook"]
