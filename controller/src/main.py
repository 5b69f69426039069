"""
CrossDeploy Controller - Main entry point.
"""

import logging
import sys
from typing import Dict

from controller.src.accounts.local import InProcessAccount
from controller.src.bootstrap import build_pipeline
from controller.src.config import Settings, get_settings
from controller.src.errors import PipelineError
from controller.src.k8s.client import init_k8s_client, ensure_namespace
from controller.src.models.pipeline import PipelineDefinition
from controller.src.services.pipeline_parser import load_pipeline_file
from controller.src.worker import run_worker

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)]
)

logger = logging.getLogger(__name__)

def create_local_accounts(definition: PipelineDefinition, settings: Settings) -> Dict[str, InProcessAccount]:
    """One in-process account per declared account, trusting the pipeline account."""
    accounts = {}
    for alias, account in definition.accounts.items():
        target = accounts.setdefault(account.account_id, InProcessAccount(account.account_id))
        for role_name in account.roles:
            target.add_role(role_name, settings.pipeline_account_id)
        logger.info(f"Account {alias} ({account.account_id}): roles {', '.join(account.roles) or 'none'}")
    return accounts

def main():
    """Main entry point."""
    settings = get_settings()

    logger.info("Starting CrossDeploy Controller")
    logger.info(f"Pipeline file: {settings.pipeline_file}")
    logger.info(f"Build runner: {settings.build_runner}")

    try:
        definition = load_pipeline_file(settings.pipeline_file)
        pipeline = build_pipeline(definition, create_local_accounts(definition, settings), settings)
    except PipelineError as e:
        logger.error(f"Failed to load pipeline: {e.kind}: {e}")
        sys.exit(1)

    for name, value in pipeline.exports.items():
        logger.info(f"Export {name} = {value}")

    if settings.build_runner == "kubernetes":
        # Initialize Kubernetes client
        if not init_k8s_client():
            logger.error("Failed to initialize Kubernetes client")
            sys.exit(1)

        # Ensure namespace exists
        try:
            ensure_namespace()
        except Exception as e:
            logger.error(f"Failed to ensure namespace: {e}")
            sys.exit(1)

    # Start worker
    logger.info("Starting worker...")
    run_worker(pipeline, settings)

if __name__ == "__main__":
    main()
