# Overview: Fire-and-forget job publishing for audit logs and email notifications.

"""
Background job enqueueing

WHY: Audit logging and receipt emails are side effects of committed state
changes, not part of them. They are published after commit, never block the
caller, and never undo or fail a core operation.

DESIGN:
- JobSink is the consumed interface: publish(queue, job) with no meaningful
  return value. Delivery (Redis list, message broker, ...) lives outside the
  core.
- LoggingJobSink is the default: it writes the job to the application log.
- enqueue_job() swallows and logs sink failures; that is the only place in
  the core where an exception is not propagated.
"""

from __future__ import annotations

import json
import logging
import uuid

from retailops.time_utils import utcnow, to_utc_z


logger = logging.getLogger(__name__)


QUEUE_AUDIT_LOG = "queue:audit_log"
QUEUE_EMAIL_NOTIFICATION = "queue:email_notification"

JOB_AUDIT_LOG = "AUDIT_LOG"
JOB_EMAIL_NOTIFICATION = "EMAIL_NOTIFICATION"


class JobSink:
    """Non-blocking destination for background jobs."""

    def publish(self, queue: str, job: dict) -> None:
        raise NotImplementedError


class LoggingJobSink(JobSink):
    def publish(self, queue: str, job: dict) -> None:
        logger.info("job %s -> %s: %s", job["type"], queue, json.dumps(job, default=str))


def enqueue_job(sink: JobSink, queue: str, job_type: str, payload: dict, *, max_attempts: int = 3) -> str:
    job = {
        "id": str(uuid.uuid4()),
        "type": job_type,
        "payload": payload,
        "created_at": to_utc_z(utcnow()),
        "attempts": 0,
        "max_attempts": max_attempts,
    }
    try:
        sink.publish(queue, job)
    except Exception:
        logger.exception("Failed to enqueue %s job %s", job_type, job["id"])
    else:
        logger.debug("Job enqueued id=%s type=%s queue=%s", job["id"], job_type, queue)
    return job["id"]


def enqueue_audit_log_job(
    sink: JobSink,
    *,
    event_type: str,
    business_id: int | None,
    user_id: int | None,
    entity_type: str,
    entity_id,
    outlet_id: int | None = None,
    payload: dict | None = None,
) -> str:
    return enqueue_job(sink, QUEUE_AUDIT_LOG, JOB_AUDIT_LOG, {
        "event_type": event_type,
        "business_id": business_id,
        "user_id": user_id,
        "outlet_id": outlet_id,
        "entity_type": entity_type,
        "entity_id": entity_id,
        "payload": payload or {},
    })


def enqueue_email_notification_job(
    sink: JobSink,
    *,
    to_email: str,
    subject: str,
    template_name: str,
    template_data: dict,
    related_entity_type: str | None = None,
    related_entity_id=None,
) -> str:
    return enqueue_job(sink, QUEUE_EMAIL_NOTIFICATION, JOB_EMAIL_NOTIFICATION, {
        "to_email": to_email,
        "subject": subject,
        "template_name": template_name,
        "template_data": template_data,
        "related_entity_type": related_entity_type,
        "related_entity_id": related_entity_id,
    })
