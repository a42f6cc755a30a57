import logging

from django.apps import AppConfig

log = logging.getLogger(__name__)


class LeadFlowsConfig(AppConfig):
    name = "apps.leadflows"
    label = "leadflows"
    verbose_name = "Lead Flows"
    default_auto_field = "django.db.models.BigAutoField"

    def ready(self):
        # system checks + reset du cache de settings sur setting_changed
        from . import checks  # noqa: F401
        from . import conf  # noqa: F401
        log.debug("LeadFlows loaded")
