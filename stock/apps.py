"""
Stock — Application Configuration
"""

from django.apps import AppConfig


class StockConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'stock'
    verbose_name = 'Branch Stock'

    def ready(self):
        from . import signals  # noqa: F401
