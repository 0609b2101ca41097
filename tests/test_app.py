"""
Unit tests for the CDK entry point
"""

import aws_cdk as cdk
import aws_cdk.assertions as assertions
import pytest

from app import build
from config.environments import PIPELINE_CONFIG
from config.errors import ConfigurationError
from stacks.bookstack_stage import BookStackStage
from stacks.pipeline_stack import PipelineStack


class TestBuild:
    def test_pipeline_account_gets_pipeline(self):
        app = cdk.App(context={"account": PIPELINE_CONFIG.account})

        target = build(app)

        assert isinstance(target, PipelineStack)
        assert target.account == PIPELINE_CONFIG.account
        assert target.region == PIPELINE_CONFIG.region

    def test_pipeline_forced_from_context(self):
        app = cdk.App(context={"account": "999999999999", "pipeline": "true"})

        assert isinstance(build(app), PipelineStack)

    def test_other_account_gets_stage(self):
        app = cdk.App(context={"account": "999999999999", "environment": "DevOregon"})

        target = build(app)

        assert isinstance(target, BookStackStage)
        assert target.node.id == "BookStack-dev"
        assert target.database_stack.account == "999999999999"
        assert target.database_stack.region == "us-west-2"

    def test_stage_resources_tagged(self):
        app = cdk.App(context={"account": "999999999999"})

        target = build(app)

        template = assertions.Template.from_stack(target.database_stack)
        (secret,) = template.find_resources("AWS::SecretsManager::Secret").values()
        tags = {tag["Key"]: tag["Value"] for tag in secret["Properties"]["Tags"]}

        assert tags["Application"] == "BookStack"
        assert tags["ManagedBy"] == "CDK"

    def test_unknown_environment(self):
        app = cdk.App(context={"environment": "ProdMars"})

        with pytest.raises(ConfigurationError, match="DevOregon"):
            build(app)
