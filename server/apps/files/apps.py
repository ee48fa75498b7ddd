"""Django app configuration for files app."""

from typing_extensions import override

from django.apps import AppConfig


class FilesConfig(AppConfig):
    """Configuration for the chunked upload and catalog app."""

    default_auto_field = 'django.db.models.BigAutoField'
    name = 'server.apps.files'
    verbose_name = 'Cloud Drive Files'

    @override
    def ready(self) -> None:
        """Import signal handlers when app is ready."""
        from server.apps.files import signals  # noqa: F401
