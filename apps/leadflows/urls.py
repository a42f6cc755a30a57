from django.urls import path

from apps.leadflows.api.views import (
    FlowDetailView,
    FlowDraftView,
    FlowListView,
    FlowPublishView,
    PublicFlowStepView,
    PublicFlowView,
)

app_name = "leadflows"
urlpatterns = [
    path("", FlowListView.as_view(), name="list"),
    path("public/<slug:slug>/", PublicFlowView.as_view(), name="public"),
    path("public/<slug:slug>/step/", PublicFlowStepView.as_view(), name="public-step"),
    path("<uuid:flow_id>/", FlowDetailView.as_view(), name="detail"),
    path("<uuid:flow_id>/draft/", FlowDraftView.as_view(), name="draft"),
    path("<uuid:flow_id>/publish/", FlowPublishView.as_view(), name="publish"),
]
