# assay_core/apps.py

from django.apps import AppConfig


class AssayCoreConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "assay_core"
    verbose_name = "Assay registry"

    def ready(self):
        from . import signals  # noqa
