from django.contrib import admin, messages

from . import repository
from .constants import FlowStatus
from .exceptions import LeadFlowError
from .models import Flow, FlowAudit, FlowVersion


class FlowVersionInline(admin.TabularInline):
    model = FlowVersion
    extra = 0
    can_delete = False
    fields = ("version", "slug", "status", "created_at", "published_at")
    readonly_fields = fields
    ordering = ("-version",)

    def has_add_permission(self, request, obj=None):
        return False


def _set_status(modeladmin, request, queryset, status):
    done = 0
    for flow in queryset:
        try:
            repository.set_flow_status(flow.pk, status)
            done += 1
        except LeadFlowError as exc:
            modeladmin.message_user(request, f"{flow}: {exc}", level=messages.ERROR)
    if done:
        modeladmin.message_user(request, f"{done} flow(s) -> {status}", level=messages.SUCCESS)


@admin.action(description="Publier le dernier brouillon")
def publish_latest_draft(modeladmin, request, queryset):
    for flow in queryset:
        try:
            published = repository.publish(flow.pk)
        except LeadFlowError as exc:
            modeladmin.message_user(request, f"{flow}: {exc}", level=messages.ERROR)
        else:
            modeladmin.message_user(request, f"{flow}: v{published.version} publiée", level=messages.SUCCESS)


@admin.action(description="Mettre en pause")
def pause_flows(modeladmin, request, queryset):
    _set_status(modeladmin, request, queryset, FlowStatus.PAUSED)


@admin.action(description="Archiver")
def archive_flows(modeladmin, request, queryset):
    _set_status(modeladmin, request, queryset, FlowStatus.ARCHIVED)


@admin.register(Flow)
class FlowAdmin(admin.ModelAdmin):
    list_display = ("name", "slug", "status", "updated_at")
    list_filter = ("status",)
    search_fields = ("name", "slug")
    readonly_fields = ("id", "settings", "google_ads_config", "style_config", "created_at", "updated_at")
    inlines = [FlowVersionInline]
    actions = [publish_latest_draft, pause_flows, archive_flows]


@admin.register(FlowAudit)
class FlowAuditAdmin(admin.ModelAdmin):
    list_display = ("flow_id", "action", "created_at")
    list_filter = ("action",)
    search_fields = ("flow_id",)
    readonly_fields = ("flow_id", "action", "meta", "created_at")

    def has_add_permission(self, request):
        return False
