"""Error taxonomy for the form builder.

Every error is an ``APIException`` so the default DRF exception handler
renders it. Server-side failures carry a generic detail; the underlying
cause is logged where it is caught and chained with ``raise ... from``.
"""
from __future__ import annotations

from rest_framework import status
from rest_framework.exceptions import APIException


class FormBuilderError(APIException):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = "The form builder could not complete the request."
    default_code = "form_builder_error"


class ValidationFailed(FormBuilderError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "The form definition is invalid."
    default_code = "validation_failed"


class NotFound(FormBuilderError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Not found."
    default_code = "not_found"


class Forbidden(FormBuilderError):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "You do not have access to this form."
    default_code = "forbidden"


class GenerationFailed(FormBuilderError):
    default_detail = "Failed to generate the form table."
    default_code = "generation_failed"


class SchemaSyncFailed(GenerationFailed):
    default_detail = "Failed to update the form table."
    default_code = "schema_sync_failed"


class ModelUnresolved(FormBuilderError):
    default_detail = "This form is not accepting submissions right now."
    default_code = "model_unresolved"


class SubmissionFailed(FormBuilderError):
    default_detail = "Whoops! Something went wrong, please try again."
    default_code = "submission_failed"
