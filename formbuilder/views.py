"""API views for the form builder."""
from __future__ import annotations

from typing import Any, Dict

from django.conf import settings
from django.urls import reverse
from rest_framework import status, viewsets
from rest_framework.decorators import api_view, permission_classes
from rest_framework.pagination import PageNumberPagination
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.request import Request
from rest_framework.response import Response

from . import lifecycle, submissions
from .permissions import PublicFormAccess
from .serializers import (
    FormDetailSerializer,
    FormSerializer,
    FormSummarySerializer,
    SaveFormSerializer,
    SubmissionSerializer,
)


class FormBuilderPagination(PageNumberPagination):
    page_size = settings.FORMBUILDER_PAGE_SIZE


class FormViewSet(viewsets.GenericViewSet):
    """Forms owned by the signed-in user."""

    permission_classes = [IsAuthenticated]
    pagination_class = FormBuilderPagination
    serializer_class = FormSerializer
    lookup_value_regex = r"\d+"

    def list(self, request: Request) -> Response:
        page = self.paginate_queryset(lifecycle.list_forms(request.user.id))
        return self.get_paginated_response(FormSummarySerializer(page, many=True).data)

    def create(self, request: Request) -> Response:
        payload = SaveFormSerializer(data=request.data)
        payload.is_valid(raise_exception=True)
        form = lifecycle.create_form(request.user.id, payload.validated_data)
        return Response(
            {
                "success": True,
                "details": "Form and table successfully created!",
                "form": FormSerializer(form).data,
            },
            status=status.HTTP_201_CREATED,
        )

    def retrieve(self, request: Request, pk: str) -> Response:
        form = lifecycle.get_form(request.user.id, int(pk))
        return Response(FormDetailSerializer(form).data)

    def update(self, request: Request, pk: str, partial: bool = False) -> Response:
        payload = SaveFormSerializer(data=request.data, partial=partial)
        payload.is_valid(raise_exception=True)
        form = lifecycle.update_form(request.user.id, int(pk), payload.validated_data)
        return Response(
            {
                "success": True,
                "details": "Form and table successfully updated!",
                "form": FormSerializer(form).data,
            }
        )

    def partial_update(self, request: Request, pk: str) -> Response:
        return self.update(request, pk, partial=True)

    def destroy(self, request: Request, pk: str) -> Response:
        form = lifecycle.delete_form(request.user.id, int(pk))
        return Response({"success": True, "details": f"'{form.name}' deleted."})


class SubmissionViewSet(viewsets.GenericViewSet):
    """Entries submitted to one of the signed-in user's forms."""

    permission_classes = [IsAuthenticated]
    pagination_class = FormBuilderPagination
    serializer_class = SubmissionSerializer
    lookup_value_regex = r"\d+"

    def list(self, request: Request, form_pk: str) -> Response:
        form, rows = submissions.list_submissions(request.user.id, int(form_pk))
        page = self.paginate_queryset(rows)
        response = self.get_paginated_response(SubmissionSerializer(page, many=True).data)
        response.data["form"] = FormSummarySerializer(form).data
        response.data["entries_header"] = form.entries_header()
        return response

    def retrieve(self, request: Request, form_pk: str, pk: str) -> Response:
        form, row, header = submissions.show_submission(request.user.id, int(form_pk), int(pk))
        submission = SubmissionSerializer(row).data
        return Response(
            {
                "form": {"id": form.id, "name": form.name},
                "submission": submission,
                "entries": [
                    {"name": entry["name"], "label": entry["label"], "value": submission.get(entry["name"])}
                    for entry in header
                ],
            }
        )

    def destroy(self, request: Request, form_pk: str, pk: str) -> Response:
        submissions.delete_submission(request.user.id, int(form_pk), int(pk))
        return Response({"success": True, "details": "Submission successfully deleted."})


def _submitted_values(data: Any) -> Dict[str, Any]:
    """Flatten request data; ``name[]`` keys and repeated keys become lists."""

    if not hasattr(data, "lists"):
        return dict(data)
    values: Dict[str, Any] = {}
    for key, items in data.lists():
        if key.endswith("[]"):
            values[key[:-2]] = items
        else:
            values[key] = items if len(items) > 1 else items[0]
    return values


@api_view(["GET", "POST"])
@permission_classes([PublicFormAccess])
def public_form(request: Request, identifier: str) -> Response:
    """Render a form for filling in, or accept a submission for it."""

    if request.method == "POST":
        row = submissions.submit_form(identifier, _submitted_values(request.data))
        return Response(
            {
                "success": True,
                "details": "Form successfully submitted.",
                "submission_id": row.pk,
                "dest": reverse("public-form-feedback", args=[identifier]),
            },
            status=status.HTTP_201_CREATED,
        )

    form = submissions.render_form(identifier)
    return Response({"title": form.name, "form": FormSerializer(form).data})


@api_view(["GET"])
@permission_classes([PublicFormAccess])
def public_form_feedback(request: Request, identifier: str) -> Response:
    form = submissions.form_feedback(identifier)
    return Response({"title": "Form Submitted!", "form": FormSummarySerializer(form).data})


@api_view(["GET"])
@permission_classes([AllowAny])
def health(request: Request) -> Response:
    """Readiness endpoint for orchestration tooling."""

    return Response({"status": "ok"})
