from graphlib import CycleError, TopologicalSorter
from typing import Callable, Dict, Mapping, Tuple

from aws_cdk import Stack, Stage, Tags
from constructs import Construct

from config.environments import EnvironmentConfig
from config.errors import ConfigurationError
from stacks.application_stack import ApplicationStack
from stacks.database_stack import DatabaseStack

# Stack name -> stacks it must be deployed after
STACK_GRAPH: Mapping[str, Tuple[str, ...]] = {
    "Data": (),
    "App": ("Data",),
}


def deployment_order(graph: Mapping[str, Tuple[str, ...]]) -> Tuple[str, ...]:
    """Order stacks so every stack comes after the stacks it depends on"""
    for name, dependencies in graph.items():
        unknown = [d for d in dependencies if d not in graph]
        if unknown:
            raise ConfigurationError(f"Stack {name!r} depends on unknown stacks {unknown}")

    try:
        return tuple(TopologicalSorter(graph).static_order())
    except CycleError as e:
        raise ConfigurationError(f"Stack dependency cycle: {e.args[1]}") from e


def _build_data(stage: Stage, config: EnvironmentConfig, _built: Dict[str, Stack]) -> Stack:
    return DatabaseStack(
        stage,
        "Data",
        config=config,
        description=f"BookStack {config.environment_name} data layer (Aurora MySQL)",
    )


def _build_app(stage: Stage, config: EnvironmentConfig, built: Dict[str, Stack]) -> Stack:
    return ApplicationStack(
        stage,
        "App",
        config=config,
        database=built["Data"].outputs,
        description=f"BookStack {config.environment_name} application layer (ECS, ALB, S3)",
    )


STACK_BUILDERS: Mapping[str, Callable[[Stage, EnvironmentConfig, Dict[str, Stack]], Stack]] = {
    "Data": _build_data,
    "App": _build_app,
}


class BookStackStage(Stage):
    """
    One environment deployment: data layer first, then the application layer
    that reads the database endpoint and credential secret.
    """

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        config: EnvironmentConfig,
        **kwargs,
    ) -> None:
        super().__init__(scope, construct_id, **kwargs)

        self.config = config
        self.stacks: Dict[str, Stack] = {}

        for name in deployment_order(STACK_GRAPH):
            stack = STACK_BUILDERS[name](self, config, self.stacks)
            for dependency in STACK_GRAPH[name]:
                stack.add_dependency(self.stacks[dependency])
            self.stacks[name] = stack

        self.database_stack = self.stacks["Data"]
        self.application_stack = self.stacks["App"]

        # Surfaced to pipeline post-deploy steps
        self.app_url_output = self.application_stack.app_url_output
        self.cluster_name_output = self.application_stack.cluster_name_output
        self.service_name_output = self.application_stack.service_name_output

        # App-level tags stop at the stage boundary
        Tags.of(self).add("Application", "BookStack")
        Tags.of(self).add("ManagedBy", "CDK")
