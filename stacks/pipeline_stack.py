import logging
from typing import List, Mapping, Optional

import aws_cdk as cdk
from aws_cdk import Stack, aws_iam as iam, pipelines, Tags
from constructs import Construct

from config.environments import (
    ENVIRONMENTS,
    EnvironmentConfig,
    PipelineConfig,
    get_environment_config,
    validate_pipeline_config,
)
from stacks.bookstack_stage import BookStackStage

logger = logging.getLogger(__name__)

LOOKUP_ROLE_ARN = "arn:aws:iam::*:role/cdk-*-lookup-role-*"


class PipelineStack(Stack):
    """
    Self-mutating CDK pipeline.

    The synth step runs the configured build commands in order; a failing
    command stops the pipeline before any stage deploys. Waves deploy in
    declaration order and each stage is smoke-checked after it deploys.
    The synth role may assume the bootstrap lookup role so VPC lookups
    resolve inside CodeBuild.
    """

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        config: PipelineConfig,
        environments: Optional[Mapping[str, EnvironmentConfig]] = None,
        **kwargs,
    ) -> None:
        super().__init__(scope, construct_id, **kwargs)

        environments = ENVIRONMENTS if environments is None else environments
        validate_pipeline_config(config, environments)

        self.config = config
        self.source = pipelines.CodePipelineSource.connection(
            config.repository,
            config.branch,
            connection_arn=config.connection_arn,
        )

        targets = [
            get_environment_config(key, environments)
            for wave in config.waves
            for key in wave.environments
        ]

        self.pipeline = pipelines.CodePipeline(
            self,
            "Pipeline",
            pipeline_name=config.pipeline_name,
            cross_account_keys=any(target.account != config.account for target in targets),
            synth=pipelines.CodeBuildStep(
                "Synth",
                input=self.source,
                commands=list(config.build_commands),
                role_policy_statements=[self._lookup_role_statement()],
            ),
        )

        self.stages: List[BookStackStage] = []
        for wave_config in config.waves:
            wave = self.pipeline.add_wave(wave_config.name)
            for key in wave_config.environments:
                env_config = get_environment_config(key, environments)
                stage = BookStackStage(
                    self,
                    env_config.stack_prefix,
                    config=env_config,
                    env=cdk.Environment(account=env_config.account, region=env_config.region),
                )
                wave.add_stage(
                    stage,
                    pre=self._approval_steps(env_config),
                    post=[self._smoke_check_step(stage, env_config)],
                )
                self.stages.append(stage)
                logger.debug("Added %s to wave %s", key, wave_config.name)

        Tags.of(self).add("Component", "Pipeline")

    def _lookup_role_statement(self) -> iam.PolicyStatement:
        """Lets `cdk synth` resolve VPC lookups through the bootstrap lookup role"""
        return iam.PolicyStatement(
            actions=["sts:AssumeRole"],
            resources=[LOOKUP_ROLE_ARN],
            conditions={"StringEquals": {"iam:ResourceTag/aws-cdk:bootstrap-role": "lookup"}},
        )

    def _approval_steps(self, env_config: EnvironmentConfig) -> List[pipelines.Step]:
        if not env_config.require_approval:
            return []
        return [pipelines.ManualApprovalStep(f"Promote-{env_config.environment_name}")]

    def _smoke_check_step(
        self, stage: BookStackStage, env_config: EnvironmentConfig
    ) -> pipelines.CodeBuildStep:
        """Verify HTTPS, the HTTP redirect and (same account only) ECS stability"""
        env_from_outputs = {"APP_URL": stage.app_url_output}
        command = 'python scripts/smoke_check.py --url "$APP_URL"'
        policy_statements = []

        # Cross-account ECS calls would need an assumed role
        if env_config.account == self.config.account:
            env_from_outputs["CLUSTER_NAME"] = stage.cluster_name_output
            env_from_outputs["SERVICE_NAME"] = stage.service_name_output
            command += (
                ' --cluster "$CLUSTER_NAME" --service "$SERVICE_NAME"'
                f" --region {env_config.region}"
            )
            policy_statements.append(
                iam.PolicyStatement(actions=["ecs:DescribeServices"], resources=["*"])
            )

        return pipelines.CodeBuildStep(
            f"SmokeCheck-{env_config.environment_name}",
            input=self.source,
            env_from_cfn_outputs=env_from_outputs,
            install_commands=["pip install requests boto3"],
            commands=[command],
            role_policy_statements=policy_statements,
        )
