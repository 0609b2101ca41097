from aws_cdk import (
    Stack,
    aws_ec2 as ec2,
    aws_sns as sns,
    CfnOutput,
    RemovalPolicy,
    Tags,
)
from constructs import Construct

from components.app_storage import AppStorage
from components.bookstack_service import BookStackService
from components.network import lookup_vpc
from components.public_edge import PublicEdge
from components.service_alarms import ServiceAlarms
from config.environments import EnvironmentConfig
from stacks.database_stack import DatabaseOutputs


class ApplicationStack(Stack):
    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        config: EnvironmentConfig,
        database: DatabaseOutputs,
        **kwargs,
    ) -> None:
        super().__init__(scope, construct_id, **kwargs)

        removal_policy = RemovalPolicy.RETAIN if config.is_production else RemovalPolicy.DESTROY

        self.vpc: ec2.IVpc = lookup_vpc(self, "Vpc", config.network)

        # SNS Topic for service alarms
        self.notification_topic = sns.Topic(
            self, "NotificationTopic", display_name=f"BookStack {config.environment_name} service"
        )

        # Uploads and attachments
        self.storage = AppStorage(self, "Storage", removal_policy=removal_policy)
        self.bucket = self.storage.bucket

        # ALB, certificate and DNS record
        self.edge = PublicEdge(self, "Edge", vpc=self.vpc, dns=config.dns)
        self.load_balancer = self.edge.load_balancer

        # Fargate service
        self.service_construct = BookStackService(
            self,
            "Service",
            vpc=self.vpc,
            config=config.service,
            database=database,
            bucket=self.bucket,
            app_url=config.dns.app_url,
            load_balancer_security_group=self.edge.security_group,
        )
        self.service = self.service_construct.service

        self.target_group = self.edge.attach_service(
            self.service,
            port=config.service.container_port,
            health_check_path=config.service.health_check_path,
            healthy_http_codes=config.service.healthy_http_codes,
        )

        self.alarms = ServiceAlarms(
            self,
            "Alarms",
            service=self.service,
            load_balancer=self.load_balancer,
            target_group=self.target_group,
            notification_topic=self.notification_topic,
        )

        # Outputs
        self.app_url_output = CfnOutput(
            self,
            "AppUrl",
            value=config.dns.app_url,
            description="Public BookStack URL",
        )

        self.load_balancer_dns_output = CfnOutput(
            self,
            "LoadBalancerDns",
            value=self.load_balancer.load_balancer_dns_name,
            description="ALB DNS name",
        )

        self.cluster_name_output = CfnOutput(
            self,
            "ClusterName",
            value=self.service_construct.cluster.cluster_name,
            description="ECS cluster name",
        )

        self.service_name_output = CfnOutput(
            self,
            "ServiceName",
            value=self.service.service_name,
            description="ECS service name",
        )

        CfnOutput(
            self,
            "BucketName",
            value=self.bucket.bucket_name,
            description="S3 bucket for BookStack uploads",
        )

        Tags.of(self).add("Environment", config.environment_name)
        Tags.of(self).add("Layer", "Application")
