"""Access gate for the public render/submit/feedback endpoints."""
from __future__ import annotations

from rest_framework.permissions import BasePermission

from .models import Form


class PublicFormAccess(BasePermission):
    """Public forms are open to everyone, private ones need a signed-in user.

    Unknown identifiers are let through so the view can answer 404.
    """

    message = "Sign in to fill this form."

    def has_permission(self, request, view) -> bool:  # type: ignore[override]
        identifier = view.kwargs.get("identifier")
        visibility = (
            Form.objects.filter(identifier=identifier).values_list("visibility", flat=True).first()
        )
        if visibility is None or visibility == Form.PUBLIC:
            return True
        return bool(request.user and request.user.is_authenticated)
