from fastapi import Depends, Header, Request

from jobcore.v1.core.exceptions import AuthError
from jobcore.v1.orchestrators.context import JobContext
from jobcore.v1.webhooks.signing import verify_bearer_token


def get_job_context(request: Request) -> JobContext:
    """Dependency injection function for the application's job context."""
    return request.app.state.job_context


# Convenience type alias for dependency injection
JobContextDep = Depends(get_job_context)


async def require_cron_token(
    authorization: str | None = Header(None),
    context: JobContext = JobContextDep,
) -> None:
    """
    Gate trigger and admin routes behind ``Authorization: Bearer <CRON_SECRET>``.

    An empty secret rejects every request.
    """
    if not verify_bearer_token(context.settings.cron_secret, authorization):
        raise AuthError("Invalid or missing bearer token")


CronAuthDep = Depends(require_cron_token)
