"""Database models and repositories for the g2-books API."""

from . import migrations, models, repositories, session

__all__ = ["migrations", "models", "repositories", "session"]
