"""ContentForge: asynchronous AI content generation jobs."""

__version__ = "1.0.0"
