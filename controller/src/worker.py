"""
Trigger worker - watches the source and runs the pipeline on new revisions.
"""

import asyncio
import logging
from typing import Optional

import redis.asyncio as redis

from controller.src.bootstrap import Pipeline
from controller.src.config import Settings, get_settings
from controller.src.errors import ConfigurationError
from controller.src.models.pipeline import ActionKind
from controller.src.services.executor import PipelineExecutor, create_executor
from controller.src.services.github import github_source_factory
from controller.src.services.source_trigger import SourceTrigger
from controller.src.services.status_reporter import get_status_reporter
from controller.src.services.trigger_inbox import IntervalInbox, RedisTriggerInbox

logger = logging.getLogger(__name__)

def create_inbox(settings: Settings):
    if settings.use_redis_inbox:
        client = redis.from_url(settings.redis_url, decode_responses=True)
        return RedisTriggerInbox(client, settings.poll_interval)
    return IntervalInbox(settings.poll_interval)

def create_trigger(
    pipeline: Pipeline,
    executor: PipelineExecutor,
    settings: Settings,
    source_factory=None,
) -> SourceTrigger:
    """Trigger watching the pipeline's (first) source action."""
    sources = [a for _, _, _, a in pipeline.definition.actions() if a.kind == ActionKind.SOURCE]
    if not sources:
        raise ConfigurationError(f"Pipeline {pipeline.name} has no source action to watch")

    source = (source_factory or github_source_factory(settings))(sources[0].source)

    async def start_run(revision: str):
        result = await executor.run(pipeline, revision=revision)
        logger.info(f"Run {result.run_id} for {revision[:12]}: {result.status.value}")
        return result

    return SourceTrigger(source, start_run, create_inbox(settings))

async def worker_loop(pipeline: Pipeline, settings: Optional[Settings] = None):
    """Main worker loop."""
    settings = settings or get_settings()
    executor = create_executor(pipeline, settings, reporter=get_status_reporter(settings.database_url))
    trigger = create_trigger(pipeline, executor, settings)

    logger.info(f"Worker started, watching {pipeline.name} every {settings.poll_interval}s")
    try:
        await trigger.run()
    except asyncio.CancelledError:
        logger.info("Worker shutting down...")
        trigger.stop()
        raise
    finally:
        await trigger.drain()

def run_worker(pipeline: Pipeline, settings: Optional[Settings] = None):
    """Entry point for worker."""
    try:
        asyncio.run(worker_loop(pipeline, settings))
    except KeyboardInterrupt:
        logger.info("Worker stopped")
