from jobcore.v1.orchestrators.base import Orchestrator, RunSummary
from jobcore.v1.orchestrators.context import JobContext
from jobcore.v1.orchestrators.publish import ScheduledPublishOrchestrator
from jobcore.v1.orchestrators.sync import SyncOrchestrator
from jobcore.v1.orchestrators.translation import TranslationOrchestrator

# Trigger names as used in /v1/cron/{name} and `jobcore cron run {name}`
ORCHESTRATORS: dict[str, type[Orchestrator]] = {
    "translation": TranslationOrchestrator,
    "scheduled-publish": ScheduledPublishOrchestrator,
    "sync": SyncOrchestrator,
}


def build_orchestrator(name: str, context: JobContext) -> Orchestrator:
    if name not in ORCHESTRATORS:
        raise KeyError(f"Unknown orchestrator: {name}")
    return ORCHESTRATORS[name](context)


async def run_orchestrator(name: str, context: JobContext) -> RunSummary:
    return await build_orchestrator(name, context).run()
