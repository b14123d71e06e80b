"""
Prometheus metrics for the staff portal.

HTTP request metrics come from prometheus-fastapi-instrumentator (see
core.instrumentator); this module holds the domain counters:

- authentication attempts
- records created/updated/deleted per entity
- attachment reconciliation and MinIO operations
- outbound email

Usage:
    from core.metrics import track_record_change, track_minio_operation

    track_record_change("incident", "create")
    track_minio_operation("upload", success=True, duration_ms=42.0)
"""

from prometheus_client import Counter, Histogram

# ==============================================================================
# Authentication
# ==============================================================================

auth_attempts_total = Counter(
    'auth_attempts_total',
    'Total authentication attempts',
    ['method', 'status']  # status: success/failure
)

# ==============================================================================
# Records
# ==============================================================================

record_changes_total = Counter(
    'record_changes_total',
    'Records written through editor forms',
    ['entity', 'operation']  # operation: create/update/delete/<intent>
)

serial_numbers_issued_total = Counter(
    'serial_numbers_issued_total',
    'Request numbers issued',
    ['type']
)

# ==============================================================================
# Attachments and storage
# ==============================================================================

attachment_plan_items_total = Counter(
    'attachment_plan_items_total',
    'Attachment rows created, updated, replaced or deleted by reconciliation',
    ['container', 'kind']  # kind: create/update/replace/delete
)

minio_operations_total = Counter(
    'minio_operations_total',
    'Total MinIO storage operations',
    ['operation', 'status']  # operation: upload/delete/delete_directory/download
)

minio_operation_duration_ms = Histogram(
    'minio_operation_duration_ms',
    'MinIO operation duration',
    ['operation'],
    buckets=(50, 100, 200, 500, 1000, 2000, 5000, 10000, float('inf'))
)

# ==============================================================================
# Email
# ==============================================================================

emails_sent_total = Counter(
    'emails_sent_total',
    'Outbound emails',
    ['subject', 'status']
)


# ==============================================================================
# Helpers
# ==============================================================================

def track_auth_attempt(method: str, success: bool):
    auth_attempts_total.labels(method=method, status="success" if success else "failure").inc()


def track_record_change(entity: str, operation: str):
    record_changes_total.labels(entity=entity, operation=operation).inc()


def track_serial_number(serial_type: str):
    serial_numbers_issued_total.labels(type=serial_type).inc()


def track_attachment_plan(container: str, creates: int, updates: int, replaces: int, deletes: int):
    for kind, count in (
        ("create", creates),
        ("update", updates),
        ("replace", replaces),
        ("delete", deletes),
    ):
        if count:
            attachment_plan_items_total.labels(container=container, kind=kind).inc(count)


def track_minio_operation(operation: str, success: bool, duration_ms: float):
    minio_operations_total.labels(operation=operation, status="success" if success else "failure").inc()
    minio_operation_duration_ms.labels(operation=operation).observe(duration_ms)


def track_email(subject: str, success: bool):
    emails_sent_total.labels(subject=subject, status="success" if success else "failure").inc()
