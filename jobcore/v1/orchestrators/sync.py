"""
Content-sync jobs: fan a content change out to every subscribed destination.

Each destination has its own delivery log, retry counter and next retry
time, so a destination that keeps failing never holds back the others.
The job stays ``retrying`` until every delivery is final.
"""

from datetime import datetime
from typing import Any
from uuid import UUID

from jobcore.config.logging import get_logger
from jobcore.v1.core.exceptions import PartialFailure, ValidationError
from jobcore.v1.jobs.models import DeliveryStatus, JobKind, JobStatus, SyncAction
from jobcore.v1.jobs.retry import ErrorClass, RetryAction
from jobcore.v1.jobs.schemas import DeliveryLogRecord, DestinationRecord, JobRecord
from jobcore.v1.orchestrators.base import JobOutcome, Orchestrator
from jobcore.v1.webhooks.dispatcher import DispatchErrorKind, DispatchResult
from jobcore.v1.webhooks.schemas import ContentEventType

logger = get_logger(__name__)

EVENT_TYPES = {
    SyncAction.CREATE: ContentEventType.ARTICLE_CREATED,
    SyncAction.UPDATE: ContentEventType.ARTICLE_UPDATED,
    SyncAction.DELETE: ContentEventType.ARTICLE_DELETED,
}


def build_event(job: JobRecord, action: SyncAction, now: datetime) -> dict[str, Any]:
    return {
        "type": EVENT_TYPES[action].value,
        "data": {**job.payload.get("data", {}), "article_id": job.article_id},
        "timestamp": now.isoformat(),
    }


class SyncOrchestrator(Orchestrator):
    kind = JobKind.SYNC

    async def process(self, job: JobRecord) -> tuple[JobOutcome, str | None]:
        try:
            action = SyncAction(job.payload.get("action"))
        except ValueError:
            raise ValidationError(f"Unknown sync action: {job.payload.get('action')}") from None
        if not job.article_id:
            raise ValidationError("Sync job has no article id")

        destinations = await self.store.list_destinations(action)
        logs = {log.destination_id: log for log in await self.store.get_delivery_logs(job.id)}
        event = build_event(job, action, self.clock())

        for destination in destinations:
            previous = logs.get(destination.id)
            if previous is not None and previous.is_final:
                continue
            if (
                previous is not None
                and previous.next_retry_at is not None
                and previous.next_retry_at > self.clock()
            ):
                continue
            # A slow fan-out must not look abandoned to overlapping runs
            if not await self.heartbeat(job):
                return JobOutcome.SKIPPED, "Claim lost"
            logs[destination.id] = await self._deliver(job, destination, previous, event)

        current = [logs[d.id] for d in destinations if d.id in logs]
        return await self._settle(job, destinations, current)

    async def _deliver(
        self,
        job: JobRecord,
        destination: DestinationRecord,
        previous: DeliveryLogRecord | None,
        event: dict[str, Any],
    ) -> DeliveryLogRecord:
        started = self.clock()
        if not destination.webhook_url:
            result = DispatchResult(
                success=False,
                error="Destination has no webhook URL",
                error_kind=DispatchErrorKind.CLIENT_ERROR,
            )
        else:
            try:
                result = await self.context.dispatcher.send(
                    destination.webhook_url,
                    destination.webhook_secret,
                    event,
                    self.context.settings.webhook_timeout_s,
                )
            except Exception as exc:
                logger.exception("Dispatch raised", destination_id=str(destination.id))
                result = DispatchResult(
                    success=False, error=str(exc), error_kind=DispatchErrorKind.NETWORK
                )

        now = self.clock()
        retry_count = previous.retry_count if previous else 0
        if result.success:
            status, next_retry_at, error = DeliveryStatus.SUCCESS, None, None
        else:
            classification = ErrorClass.RETRYABLE if result.retryable else ErrorClass.TERMINAL
            decision = self.policy.decide(retry_count, classification, now)
            retry_count = decision.retry_count
            next_retry_at = decision.next_attempt_at
            error = decision.annotate(result.error or "Delivery failed")
            status = (
                DeliveryStatus.FAILED
                if decision.action == RetryAction.FAIL
                else DeliveryStatus.RETRYING
            )

        log = await self.store.upsert_delivery_log(
            DeliveryLogRecord(
                job_id=job.id,
                destination_id=destination.id,
                status=status,
                response_status=result.status_code,
                response_body_snippet=result.body_snippet,
                error_message=error,
                retry_count=retry_count,
                next_retry_at=next_retry_at,
                duration_ms=result.duration_ms,
                started_at=started,
                completed_at=now if status in (DeliveryStatus.SUCCESS, DeliveryStatus.FAILED) else None,
            )
        )
        await self.store.update_destination(
            destination.id,
            {
                "last_synced_at": now,
                "last_sync_status": status.value,
                "last_sync_error": error,
            },
        )
        logger.info(
            "Delivery recorded",
            job_id=str(job.id),
            destination_id=str(destination.id),
            status=status.value,
            retry_count=retry_count,
            response_status=result.status_code,
        )
        return log

    async def _settle(
        self,
        job: JobRecord,
        destinations: list[DestinationRecord],
        logs: list[DeliveryLogRecord],
    ) -> tuple[JobOutcome, str | None]:
        names: dict[UUID, str] = {d.id: d.name for d in destinations}
        pending = [log for log in logs if not log.is_final]
        failed = [log for log in logs if log.status == DeliveryStatus.FAILED]
        succeeded = [log for log in logs if log.status == DeliveryStatus.SUCCESS]
        result = {
            "destinations": len(destinations),
            "succeeded": len(succeeded),
            "failed": len(failed),
            "pending": len(pending),
        }

        if pending:
            next_attempt = min(
                (log.next_retry_at for log in pending if log.next_retry_at),
                default=self.clock(),
            )
            message = "; ".join(
                f"{names.get(log.destination_id, log.destination_id)}: {log.error_message}"
                for log in pending
            )
            written = await self.finish(
                job,
                {
                    "status": JobStatus.RETRYING,
                    "scheduled_at": next_attempt,
                    "retry_count": max(log.retry_count for log in pending),
                    "error_message": f"{len(pending)} of {len(destinations)} deliveries pending: {message}",
                    "result": result,
                },
            )
            if not written:
                return JobOutcome.SKIPPED, "Claim lost"
            return JobOutcome.RETRIED, message

        error_message = None
        if failed:
            error_message = PartialFailure(
                "Delivery failed for",
                {
                    str(names.get(log.destination_id, log.destination_id)): log.error_message or ""
                    for log in failed
                },
            ).message

        if logs and len(failed) == len(logs):
            fields = {
                "status": JobStatus.FAILED,
                "completed_at": self.clock(),
                "error_message": error_message,
                "result": result,
            }
            outcome = JobOutcome.FAILED
        else:
            fields = self.completed_fields(error_message=error_message, result=result)
            outcome = JobOutcome.COMPLETED

        if not await self.finish(job, fields):
            return JobOutcome.SKIPPED, "Claim lost"
        return outcome, error_message
