import json

from aws_cdk import (
    aws_rds as rds,
    aws_ec2 as ec2,
    aws_secretsmanager as secretsmanager,
    aws_kms as kms,
    aws_cloudwatch as cloudwatch,
    aws_cloudwatch_actions as cw_actions,
    aws_sns as sns,
    RemovalPolicy,
    Duration,
    Tags,
)
from constructs import Construct

from config.environments import DatabaseConfig


class BookStackDatabase(Construct):
    """
    Aurora MySQL Serverless v2 cluster for BookStack.

    The generated credential lives in Secrets Manager and is the only secret
    attached to the cluster. Network access is limited to the surrounding VPC
    CIDR on the database port.
    """

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        vpc: ec2.IVpc,
        config: DatabaseConfig,
        vpc_cidr: str,
        secret_name: str,
        notification_topic: sns.ITopic,
        removal_policy: RemovalPolicy = RemovalPolicy.SNAPSHOT,
        **kwargs,
    ) -> None:
        super().__init__(scope, construct_id, **kwargs)

        self.config = config
        self.vpc = vpc

        # Keys and secrets have no snapshot policy
        retain_or_destroy = (
            RemovalPolicy.DESTROY
            if removal_policy == RemovalPolicy.DESTROY
            else RemovalPolicy.RETAIN
        )

        # KMS key for storage encryption
        self.db_key = kms.Key(
            self,
            "DatabaseKey",
            description="KMS key for BookStack database encryption",
            enable_key_rotation=True,
            removal_policy=retain_or_destroy,
        )

        # Generated credentials
        self.secret = secretsmanager.Secret(
            self,
            "DatabaseSecret",
            secret_name=secret_name,
            description="BookStack database credentials",
            generate_secret_string=secretsmanager.SecretStringGenerator(
                secret_string_template=json.dumps({"username": config.username}),
                generate_string_key="password",
                exclude_punctuation=True,
                password_length=config.password_length,
            ),
            removal_policy=retain_or_destroy,
        )

        # Only the VPC block may reach the database port
        self.security_group = ec2.SecurityGroup(
            self,
            "DatabaseSG",
            vpc=vpc,
            description="BookStack database access from within the VPC",
            allow_all_outbound=False,
        )
        self.security_group.add_ingress_rule(
            ec2.Peer.ipv4(vpc_cidr),
            ec2.Port.tcp(config.port),
            "MySQL from VPC",
        )

        self.cluster = rds.DatabaseCluster(
            self,
            "Cluster",
            engine=rds.DatabaseClusterEngine.aurora_mysql(
                version=rds.AuroraMysqlEngineVersion.of(config.engine_version, "8.0")
            ),
            writer=rds.ClusterInstance.serverless_v2("Writer"),
            serverless_v2_min_capacity=config.min_capacity,
            serverless_v2_max_capacity=config.max_capacity,
            credentials=rds.Credentials.from_secret(self.secret),
            default_database_name=config.database_name,
            port=config.port,
            vpc=vpc,
            vpc_subnets=ec2.SubnetSelection(subnet_type=ec2.SubnetType.PRIVATE_WITH_EGRESS),
            security_groups=[self.security_group],
            backup=rds.BackupProps(
                retention=Duration.days(config.backup_retention_days),
                preferred_window=config.backup_window,
            ),
            preferred_maintenance_window=config.maintenance_window,
            storage_encrypted=True,
            storage_encryption_key=self.db_key,
            cloudwatch_logs_exports=["error", "slowquery"],
            deletion_protection=config.deletion_protection,
            removal_policy=removal_policy,
        )

        self._create_database_alarms(notification_topic)

        Tags.of(self).add("Component", "Database")
        Tags.of(self).add("Backup", "Automated")

    @property
    def endpoint_hostname(self) -> str:
        return self.cluster.cluster_endpoint.hostname

    def _create_database_alarms(self, notification_topic: sns.ITopic):
        """Create CloudWatch alarms for the cluster"""

        cloudwatch.Alarm(
            self,
            "DatabaseCPUAlarm",
            metric=self.cluster.metric_cpu_utilization(),
            threshold=80,
            evaluation_periods=3,
            treat_missing_data=cloudwatch.TreatMissingData.NOT_BREACHING,
            alarm_description="BookStack database CPU utilization is high",
        ).add_alarm_action(cw_actions.SnsAction(notification_topic))

        cloudwatch.Alarm(
            self,
            "DatabaseConnectionsAlarm",
            metric=self.cluster.metric_database_connections(),
            threshold=500,
            evaluation_periods=2,
            treat_missing_data=cloudwatch.TreatMissingData.NOT_BREACHING,
            alarm_description="BookStack database connection count is high",
        ).add_alarm_action(cw_actions.SnsAction(notification_topic))
