import aws_cdk as cdk
import pytest

from config.environments import get_environment_config
from stacks.bookstack_stage import BookStackStage


def _build_stage(config, construct_id="Test"):
    app = cdk.App()
    return BookStackStage(
        app,
        construct_id,
        config=config,
        env=cdk.Environment(account=config.account, region=config.region),
    )


@pytest.fixture
def dev_config():
    return get_environment_config("DevOregon")


@pytest.fixture
def build_stage():
    """Factory for a synthesizable stage in a fresh app"""
    return _build_stage


@pytest.fixture
def stage(dev_config, build_stage):
    return build_stage(dev_config)
