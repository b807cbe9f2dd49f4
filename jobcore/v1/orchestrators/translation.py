"""
Translation jobs: one article into several target languages.

Languages are translated one after another. A language that fails
terminally is recorded in ``failed_languages`` at once; a language that
fails transiently stays pending and is retried with the job until its
retries run out. The job completes once every language is resolved and
at least one succeeded.
"""

from typing import Any

from jobcore.config.logging import get_logger
from jobcore.v1.core.exceptions import PartialFailure, ValidationError
from jobcore.v1.jobs.models import JobKind, JobStatus
from jobcore.v1.jobs.retry import (
    ErrorClass,
    ErrorClassifier,
    RetryAction,
    finalize_status,
    pending_targets,
)
from jobcore.v1.jobs.schemas import JobRecord
from jobcore.v1.orchestrators.actions import Translator
from jobcore.v1.orchestrators.base import JobOutcome, Orchestrator
from jobcore.v1.orchestrators.context import JobContext

logger = get_logger(__name__)


def progress_percent(targets: list[str], completed: list[str], failed: dict[str, str]) -> int:
    if not targets:
        return 100
    resolved = len(set(targets) & (set(completed) | set(failed)))
    return round(resolved / len(targets) * 100)


class TranslationOrchestrator(Orchestrator):
    kind = JobKind.TRANSLATION

    def __init__(self, context: JobContext, translator: Translator | None = None, **kwargs):
        super().__init__(context, **kwargs)
        self.translator = translator or context.translator

    def default_classifier(self) -> ErrorClassifier:
        return ErrorClassifier(self.context.settings.translation_terminal_patterns)

    async def process(self, job: JobRecord) -> tuple[JobOutcome, str | None]:
        targets = list(job.target_languages)
        if not targets:
            raise ValidationError("Translation job has no target languages")
        if self.translator is None:
            raise ValidationError("No translator configured")

        completed = list(job.completed_languages)
        failed = dict(job.failed_languages)
        transient: dict[str, str] = {}

        for language in pending_targets(targets, completed, failed):
            # Also refreshes the claim so long jobs are not taken as abandoned
            if not await self.finish(
                job, {"current_language": language, "started_at": self.clock()}
            ):
                return JobOutcome.SKIPPED, "Claim lost"

            try:
                await self.translator.translate(job, language)
            except Exception as exc:
                classification = self.classifier.classify(exc)
                logger.warning(
                    "Translation failed",
                    job_id=str(job.id),
                    language=language,
                    classification=classification.value,
                    error=str(exc),
                )
                if classification == ErrorClass.TERMINAL:
                    failed[language] = str(exc)
                else:
                    transient[language] = str(exc)
            else:
                completed.append(language)
                logger.info("Translation completed", job_id=str(job.id), language=language)

            if not await self.finish(
                job,
                {
                    "completed_languages": completed,
                    "failed_languages": failed,
                    "progress": progress_percent(targets, completed, failed),
                },
            ):
                return JobOutcome.SKIPPED, "Claim lost"

        fields: dict[str, Any] = {}
        if transient:
            now = self.clock()
            decision = self.policy.decide(job.retry_count, ErrorClass.RETRYABLE, now)
            if decision.action != RetryAction.FAIL:
                message = _describe(transient)
                if not await self.finish(job, decision.job_fields(message, now)):
                    return JobOutcome.SKIPPED, "Claim lost"
                outcome = (
                    JobOutcome.RETRIED
                    if decision.action == RetryAction.RETRY
                    else JobOutcome.RESCHEDULED
                )
                return outcome, decision.annotate(message)
            # Out of retries: the transient failures become final
            failed.update(transient)
            fields["retry_count"] = decision.retry_count

        status = finalize_status(targets, completed, failed)
        error_message = PartialFailure("Failed languages", failed).message if failed else None
        if status == JobStatus.FAILED:
            fields.update(
                status=JobStatus.FAILED,
                completed_at=self.clock(),
                error_message=error_message,
                current_language=None,
            )
            outcome = JobOutcome.FAILED
        else:
            fields.update(self.completed_fields(error_message=error_message))
            outcome = JobOutcome.COMPLETED
        fields.update(
            completed_languages=completed,
            failed_languages=failed,
            progress=progress_percent(targets, completed, failed),
            result={"completed": completed, "failed": sorted(failed)},
        )

        if not await self.finish(job, fields):
            return JobOutcome.SKIPPED, "Claim lost"
        return outcome, error_message


def _describe(errors: dict[str, str]) -> str:
    return "; ".join(f"{language}: {error}" for language, error in errors.items())
