import os
from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "section8hub.settings.prod")  # ou base/dev selon l'env

app = Celery("section8hub")
app.config_from_object("django.conf:settings", namespace="CELERY")
app.autodiscover_tasks()
