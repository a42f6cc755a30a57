"""
URL configuration for the section8hub project.

Only the lead flow engine is routed here; the directory pages, maps and admin
CRUD panels are served by the front-end application.
"""
from django.contrib import admin
from django.urls import include, path

urlpatterns = [
    path('admin/', admin.site.urls),
    path('api/flows/', include('apps.leadflows.urls', namespace='leadflows')),
]
