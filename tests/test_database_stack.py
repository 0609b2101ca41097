"""
Unit tests for the data layer
Tests the Aurora cluster, generated credentials and network access rule
"""

import dataclasses
import json

import aws_cdk as cdk
import aws_cdk.assertions as assertions
import pytest

from config.errors import ConfigurationError
from stacks.database_stack import DatabaseStack


class TestDatabaseStack:
    """Test class for the Database Stack"""

    @pytest.fixture
    def stack(self, stage):
        return stage.database_stack

    @pytest.fixture
    def template(self, stack):
        return assertions.Template.from_stack(stack)

    def test_stack_has_required_resources(self, stack):
        assert hasattr(stack, "cluster")
        assert hasattr(stack, "secret")
        assert hasattr(stack, "outputs")

    def test_single_generated_secret(self, template):
        """Exactly one credential secret per cluster"""
        template.resource_count_is("AWS::SecretsManager::Secret", 1)
        template.has_resource_properties(
            "AWS::SecretsManager::Secret",
            {
                "Name": "BookStack-dev/database-credentials",
                "GenerateSecretString": {
                    "SecretStringTemplate": json.dumps({"username": "bookstack"}),
                    "GenerateStringKey": "password",
                    "ExcludePunctuation": True,
                    "PasswordLength": 30,
                },
            },
        )

    def test_cluster_properties(self, template):
        template.has_resource_properties(
            "AWS::RDS::DBCluster",
            {
                "Engine": "aurora-mysql",
                "EngineVersion": "8.0.mysql_aurora.3.08.0",
                "DatabaseName": "bookstack",
                "Port": 3306,
                "StorageEncrypted": True,
                "DeletionProtection": True,
                "BackupRetentionPeriod": 7,
                "PreferredBackupWindow": "03:00-04:00",
                "PreferredMaintenanceWindow": "sun:04:30-sun:05:30",
                "ServerlessV2ScalingConfiguration": {"MinCapacity": 0, "MaxCapacity": 2},
            },
        )
        template.has_resource_properties(
            "AWS::RDS::DBInstance", {"DBInstanceClass": "db.serverless"}
        )

    def test_ingress_limited_to_vpc_cidr(self, template):
        """The database port is only reachable from the VPC block"""
        template.has_resource_properties(
            "AWS::EC2::SecurityGroup",
            {
                "GroupDescription": "BookStack database access from within the VPC",
                "SecurityGroupIngress": [
                    {
                        "CidrIp": "10.20.0.0/16",
                        "FromPort": 3306,
                        "ToPort": 3306,
                        "IpProtocol": "tcp",
                    }
                ],
            },
        )
        template.resource_count_is("AWS::EC2::SecurityGroupIngress", 0)

    def test_no_public_database_ingress(self, template):
        for resource in template.find_resources("AWS::EC2::SecurityGroup").values():
            for rule in resource["Properties"].get("SecurityGroupIngress", []):
                assert rule.get("CidrIp") != "0.0.0.0/0"

    def test_dev_cluster_is_disposable(self, template):
        template.has_resource("AWS::RDS::DBCluster", {"DeletionPolicy": "Delete"})

    def test_production_cluster_snapshots(self, dev_config, build_stage):
        config = dataclasses.replace(dev_config, is_production=True)
        template = assertions.Template.from_stack(build_stage(config).database_stack)

        template.has_resource(
            "AWS::RDS::DBCluster",
            {"DeletionPolicy": "Snapshot", "UpdateReplacePolicy": "Snapshot"},
        )
        template.has_resource("AWS::SecretsManager::Secret", {"DeletionPolicy": "Retain"})

    def test_outputs(self, template):
        template.has_output("DatabaseEndpoint", {})
        template.has_output("DatabaseSecretName", {})

    def test_alarms_notify_topic(self, template):
        template.resource_count_is("AWS::SNS::Topic", 1)
        template.has_resource_properties(
            "AWS::CloudWatch::Alarm",
            {"MetricName": "CPUUtilization", "Namespace": "AWS/RDS", "Threshold": 80},
        )

    def test_environment_agnostic_stack_fails_fast(self, dev_config):
        """Without account and region the VPC can't be resolved"""
        app = cdk.App()

        with pytest.raises(ConfigurationError, match="vpc-"):
            DatabaseStack(app, "Data", config=dev_config)
