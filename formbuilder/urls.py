"""Route registration for the form builder service."""
from __future__ import annotations

from django.urls import include, path
from rest_framework.routers import DefaultRouter

from .views import FormViewSet, SubmissionViewSet, health, public_form, public_form_feedback

router = DefaultRouter()
router.register(
    r"forms/(?P<form_pk>\d+)/submissions",
    SubmissionViewSet,
    basename="form-submission",
)
router.register("forms", FormViewSet, basename="form")

urlpatterns = [
    path("healthz/", health, name="form-health"),
    path("form/<str:identifier>/", public_form, name="public-form"),
    path("form/<str:identifier>/feedback/", public_form_feedback, name="public-form-feedback"),
    path("", include(router.urls)),
]
