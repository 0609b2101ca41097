from typing import Dict

from aws_cdk import (
    Stack,
    aws_ec2 as ec2,
    aws_ecs as ecs,
    aws_iam as iam,
    aws_logs as logs,
    aws_s3 as s3,
    aws_ssm as ssm,
    Duration,
    RemovalPolicy,
    Tags,
)
from constructs import Construct

from components.network import subnet_selection
from config.environments import ServiceConfig
from stacks.database_stack import DatabaseOutputs


class BookStackService(Construct):
    """
    BookStack container on ECS Fargate.

    Database password and application key are injected as ECS secrets, read by
    the execution role at task start. They never appear as plain environment
    values in the task definition.
    """

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        vpc: ec2.IVpc,
        config: ServiceConfig,
        database: DatabaseOutputs,
        bucket: s3.IBucket,
        app_url: str,
        load_balancer_security_group: ec2.ISecurityGroup,
        **kwargs,
    ) -> None:
        super().__init__(scope, construct_id, **kwargs)

        self.config = config

        self.cluster = ecs.Cluster(
            self,
            "Cluster",
            vpc=vpc,
            container_insights_v2=ecs.ContainerInsights.ENABLED,
        )

        self.log_group = logs.LogGroup(
            self,
            "LogGroup",
            retention=logs.RetentionDays.ONE_MONTH,
            removal_policy=RemovalPolicy.DESTROY,
        )

        # Pulls the image, writes logs and reads the injected secrets
        self.execution_role = iam.Role(
            self,
            "ExecutionRole",
            assumed_by=iam.ServicePrincipal("ecs-tasks.amazonaws.com"),
            managed_policies=[
                iam.ManagedPolicy.from_aws_managed_policy_name(
                    "service-role/AmazonECSTaskExecutionRolePolicy"
                )
            ],
        )

        # What the running application may touch
        self.task_role = iam.Role(
            self,
            "TaskRole",
            assumed_by=iam.ServicePrincipal("ecs-tasks.amazonaws.com"),
        )
        bucket.grant_read_write(self.task_role)

        self.task_definition = ecs.FargateTaskDefinition(
            self,
            "TaskDefinition",
            cpu=config.cpu,
            memory_limit_mib=config.memory_mib,
            execution_role=self.execution_role,
            task_role=self.task_role,
            runtime_platform=ecs.RuntimePlatform(
                cpu_architecture=getattr(ecs.CpuArchitecture, config.cpu_architecture),
                operating_system_family=ecs.OperatingSystemFamily.LINUX,
            ),
        )

        self.app_key = ssm.StringParameter.from_secure_string_parameter_attributes(
            self, "AppKey", parameter_name=config.app_key_parameter
        )

        self.container = self.task_definition.add_container(
            "BookStack",
            image=ecs.ContainerImage.from_registry(config.image_uri),
            port_mappings=[ecs.PortMapping(container_port=config.container_port)],
            logging=ecs.LogDrivers.aws_logs(stream_prefix="bookstack", log_group=self.log_group),
            environment=self._environment(database, bucket, app_url),
            secrets={
                "DB_PASSWORD": ecs.Secret.from_secrets_manager(database.secret, "password"),
                "APP_KEY": ecs.Secret.from_ssm_parameter(self.app_key),
            },
        )

        self.security_group = ec2.SecurityGroup(
            self,
            "ServiceSG",
            vpc=vpc,
            description="Security group for BookStack tasks",
            allow_all_outbound=True,
        )
        self.security_group.add_ingress_rule(
            load_balancer_security_group,
            ec2.Port.tcp(config.container_port),
            "HTTP from ALB",
        )

        self.service = ecs.FargateService(
            self,
            "Service",
            cluster=self.cluster,
            task_definition=self.task_definition,
            desired_count=config.desired_count,
            min_healthy_percent=100,
            max_healthy_percent=200,
            security_groups=[self.security_group],
            vpc_subnets=subnet_selection(config.subnet_type),
            assign_public_ip=config.assign_public_ip,
            health_check_grace_period=Duration.seconds(120),
            circuit_breaker=ecs.DeploymentCircuitBreaker(enable=True, rollback=True),
        )

        Tags.of(self).add("Component", "Compute")

    def _environment(
        self, database: DatabaseOutputs, bucket: s3.IBucket, app_url: str
    ) -> Dict[str, str]:
        return {
            "APP_LANG": self.config.app_lang,
            "APP_URL": app_url,
            "DB_HOST": database.endpoint_hostname,
            "DB_PORT": str(database.port),
            "DB_USERNAME": database.username,
            "DB_DATABASE": database.database_name,
            "STORAGE_TYPE": "s3",
            "STORAGE_S3_BUCKET": bucket.bucket_name,
            "STORAGE_S3_REGION": Stack.of(self).region,
        }
