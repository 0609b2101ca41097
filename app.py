#!/usr/bin/env python3
import logging
import os
from typing import Union

import aws_cdk as cdk

from config.environments import PIPELINE_CONFIG, get_environment_config
from stacks.bookstack_stage import BookStackStage
from stacks.pipeline_stack import PipelineStack

logger = logging.getLogger(__name__)

DEFAULT_ENVIRONMENT = "DevOregon"


def build(app: cdk.App) -> Union[PipelineStack, BookStackStage]:
    """
    Pipeline account (or `-c pipeline=true`) -> the CI/CD pipeline; any other
    account -> the selected environment's stage directly (sandbox deploys).
    """
    env_key = app.node.try_get_context("environment") or DEFAULT_ENVIRONMENT
    config = get_environment_config(env_key)
    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    account = app.node.try_get_context("account") or os.environ.get("CDK_DEFAULT_ACCOUNT")

    force_pipeline = str(app.node.try_get_context("pipeline")).lower() == "true"

    if force_pipeline or account == PIPELINE_CONFIG.account:
        logger.info("Synthesizing pipeline %s (Account: %s)", PIPELINE_CONFIG.pipeline_name, account)
        target = PipelineStack(
            app,
            "BookStackPipeline",
            config=PIPELINE_CONFIG,
            env=cdk.Environment(account=PIPELINE_CONFIG.account, region=PIPELINE_CONFIG.region),
            description="CI/CD pipeline for the BookStack infrastructure",
        )
    else:
        logger.info(
            "Synthesizing stage for environment: %s (Account: %s, Region: %s)",
            env_key,
            account or config.account,
            config.region,
        )
        target = BookStackStage(
            app,
            config.stack_prefix,
            config=config,
            env=cdk.Environment(account=account or config.account, region=config.region),
        )

    cdk.Tags.of(app).add("Application", "BookStack")
    cdk.Tags.of(app).add("ManagedBy", "CDK")
    return target


if __name__ == "__main__":
    app = cdk.App()
    build(app)
    app.synth()
