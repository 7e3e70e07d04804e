"""Form lifecycle notifications.

Each signal is sent with ``sender=Form`` and the affected instance as
``form``. Receivers run synchronously inside the lifecycle operation.
"""
from django.dispatch import Signal

form_created = Signal()
form_updated = Signal()
form_deleted = Signal()
