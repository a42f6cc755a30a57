from __future__ import annotations

import logging
from typing import Any

from django.utils.cache import patch_cache_control
from rest_framework import status
from rest_framework.permissions import AllowAny, IsAdminUser
from rest_framework.response import Response
from rest_framework.views import APIView

from .. import repository
from ..conf import get_settings
from ..engine.runtime import FlowRuntime
from ..exceptions import (
    FlowCompletedError,
    FlowNotFoundError,
    FlowValidationError,
    StepResponseError,
    VersionConflictError,
)
from .serializers import FlowSummarySerializer, StepActionSerializer

log = logging.getLogger("leadflows.api")

NOT_FOUND = {"detail": "Not found."}


class LeadFlowAPIView(APIView):
    """Traduit les erreurs du domaine en réponses HTTP."""

    def handle_exception(self, exc):
        if isinstance(exc, FlowValidationError):
            log.info("flow_invalid path=%s errors=%d", self.request.path, len(exc.errors))
            return Response(
                {"detail": "Invalid flow payload.", "errors": exc.as_list()},
                status=status.HTTP_400_BAD_REQUEST,
            )
        if isinstance(exc, FlowNotFoundError):
            log.info("flow_not_found path=%s reason=%s", self.request.path, exc)
            return Response(NOT_FOUND, status=status.HTTP_404_NOT_FOUND)
        if isinstance(exc, VersionConflictError):
            log.warning("flow_conflict flow=%s version=%s", exc.flow_id, exc.version)
            return Response(
                {"detail": "Version conflict, retry the save.", "version": exc.version},
                status=status.HTTP_409_CONFLICT,
            )
        return super().handle_exception(exc)


# ------------------------------------------------------------
# Public
# ------------------------------------------------------------

class PublicFlowView(LeadFlowAPIView):
    permission_classes = [AllowAny]
    authentication_classes: list[Any] = []

    def get(self, request, slug: str):
        found = repository.get_published_by_slug(slug)
        if found is None:
            return Response(NOT_FOUND, status=status.HTTP_404_NOT_FOUND)
        response = Response({
            "flow_id": str(found.flow_id),
            "version": found.version,
            "payload": found.payload.to_document(),
        })
        max_age = get_settings().public_cache_seconds
        if max_age:
            patch_cache_control(response, public=True, max_age=max_age)
        return response


class PublicFlowStepView(LeadFlowAPIView):
    """
    Stepper sans état serveur: le client renvoie ``state`` (issu du dernier appel),
    l'action (start/next/back) et les réponses de la step courante.
    """

    permission_classes = [AllowAny]
    authentication_classes: list[Any] = []

    def post(self, request, slug: str):
        found = repository.get_published_by_slug(slug)
        if found is None:
            return Response(NOT_FOUND, status=status.HTTP_404_NOT_FOUND)

        serializer = StepActionSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
        data = serializer.validated_data

        action = data["action"]
        runtime = FlowRuntime.restore(found.payload, None if action == "start" else data["state"])
        if action == "next":
            try:
                runtime.advance(data["responses"])
            except FlowCompletedError:
                return Response({"detail": "Flow already completed."}, status=status.HTTP_409_CONFLICT)
            except StepResponseError as exc:
                log.info("flow_step_invalid slug=%s step=%s fields=%s", slug, exc.step_id, ",".join(exc.errors))
                return Response(
                    {"detail": "Invalid answers.", "errors": exc.as_list(), "state": runtime.snapshot()},
                    status=status.HTTP_400_BAD_REQUEST,
                )
        elif action == "back":
            runtime.retreat()

        rendered = runtime.render_current()
        log.info(
            "flow_step slug=%s version=%s action=%s step=%s completed=%s",
            slug, found.version, action, rendered.step_id if rendered else None, runtime.completed,
        )
        return Response({
            "state": runtime.snapshot(),
            "completed": runtime.completed,
            "progress": runtime.progress(),
            "can_go_back": runtime.can_go_back,
            "step": None if rendered is None else {
                "id": rendered.step_id,
                "type": rendered.step_type,
                "template": rendered.template,
                "context": rendered.context,
            },
        })


# ------------------------------------------------------------
# Authoring (staff)
# ------------------------------------------------------------

class FlowListView(LeadFlowAPIView):
    permission_classes = [IsAdminUser]

    def get(self, request):
        flows = repository.list_flows()
        return Response(FlowSummarySerializer(flows, many=True).data)

    def post(self, request):
        saved = repository.save_draft(None, request.data)
        return Response(
            {"flow_id": str(saved.flow_id), "version": saved.version},
            status=status.HTTP_201_CREATED,
        )


class FlowDraftView(LeadFlowAPIView):
    permission_classes = [IsAdminUser]

    def get(self, request, flow_id):
        payload = repository.get_draft_version(flow_id)
        if payload is None:
            return Response(NOT_FOUND, status=status.HTTP_404_NOT_FOUND)
        return Response(payload.to_document())

    def put(self, request, flow_id):
        saved = repository.save_draft_with_retry(flow_id, request.data)
        return Response({"flow_id": str(saved.flow_id), "version": saved.version})


class FlowPublishView(LeadFlowAPIView):
    permission_classes = [IsAdminUser]

    def post(self, request, flow_id):
        published = repository.publish(flow_id)
        return Response({"version": published.version})


class FlowDetailView(LeadFlowAPIView):
    permission_classes = [IsAdminUser]

    def delete(self, request, flow_id):
        repository.delete_flow(flow_id)
        return Response(status=status.HTTP_204_NO_CONTENT)
