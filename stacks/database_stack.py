from dataclasses import dataclass
from typing import Optional

from aws_cdk import (
    Stack,
    aws_ec2 as ec2,
    aws_secretsmanager as secretsmanager,
    aws_sns as sns,
    CfnOutput,
    RemovalPolicy,
    Tags,
)
from constructs import Construct

from components.bookstack_database import BookStackDatabase
from components.network import lookup_vpc
from config.environments import EnvironmentConfig


@dataclass(frozen=True)
class DatabaseOutputs:
    """What the data layer hands to the application layer"""

    endpoint_hostname: str
    secret: secretsmanager.ISecret
    secret_name: str
    database_name: str
    username: str
    port: int


class DatabaseStack(Stack):
    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        config: EnvironmentConfig,
        removal_policy: Optional[RemovalPolicy] = None,
        **kwargs,
    ) -> None:
        super().__init__(scope, construct_id, **kwargs)

        if removal_policy is None:
            removal_policy = (
                RemovalPolicy.SNAPSHOT if config.is_production else RemovalPolicy.DESTROY
            )

        # Fails before any resource is declared if the VPC can't be resolved
        self.vpc: ec2.IVpc = lookup_vpc(self, "Vpc", config.network)

        # SNS Topic for database alarms
        self.notification_topic = sns.Topic(
            self, "NotificationTopic", display_name=f"BookStack {config.environment_name} database"
        )

        self.database_construct = BookStackDatabase(
            self,
            "Database",
            vpc=self.vpc,
            config=config.database,
            vpc_cidr=config.network.vpc_cidr,
            secret_name=f"{config.stack_prefix}/database-credentials",
            notification_topic=self.notification_topic,
            removal_policy=removal_policy,
        )
        self.cluster = self.database_construct.cluster
        self.secret = self.database_construct.secret

        self.outputs = DatabaseOutputs(
            endpoint_hostname=self.database_construct.endpoint_hostname,
            secret=self.secret,
            secret_name=self.secret.secret_name,
            database_name=config.database.database_name,
            username=config.database.username,
            port=config.database.port,
        )

        CfnOutput(
            self,
            "DatabaseEndpoint",
            value=self.outputs.endpoint_hostname,
            description="BookStack database writer endpoint",
        )

        CfnOutput(
            self,
            "DatabaseSecretName",
            value=self.outputs.secret_name,
            description="Secrets Manager secret holding the database credentials",
        )

        Tags.of(self).add("Environment", config.environment_name)
        Tags.of(self).add("Layer", "Data")
