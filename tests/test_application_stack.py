"""
Unit tests for the application layer
Tests the Fargate service, load balancer listeners, DNS record and storage
"""

import json

import aws_cdk.assertions as assertions
import pytest


def _only(template, resource_type):
    resources = template.find_resources(resource_type)
    assert len(resources) == 1, f"expected one {resource_type}, found {len(resources)}"
    return next(iter(resources.values()))


def _container(template):
    task_definition = _only(template, "AWS::ECS::TaskDefinition")
    (container,) = task_definition["Properties"]["ContainerDefinitions"]
    return container


def _listener(template, port):
    for resource in template.find_resources("AWS::ElasticLoadBalancingV2::Listener").values():
        if resource["Properties"]["Port"] == port:
            return resource
    raise AssertionError(f"no listener on port {port}")


class TestApplicationStack:
    """Test class for the Application Stack"""

    @pytest.fixture
    def stack(self, stage):
        return stage.application_stack

    @pytest.fixture
    def template(self, stack):
        return assertions.Template.from_stack(stack)

    @pytest.fixture
    def environment(self, template):
        return {item["Name"]: item["Value"] for item in _container(template)["Environment"]}

    @pytest.fixture
    def secrets(self, template):
        return {item["Name"]: item["ValueFrom"] for item in _container(template)["Secrets"]}

    def test_task_definition_shape(self, template):
        template.has_resource_properties(
            "AWS::ECS::TaskDefinition",
            {
                "Cpu": "1024",
                "Memory": "2048",
                "NetworkMode": "awsvpc",
                "RequiresCompatibilities": ["FARGATE"],
                "RuntimePlatform": {
                    "CpuArchitecture": "ARM64",
                    "OperatingSystemFamily": "LINUX",
                },
            },
        )

    def test_container_image_and_port(self, template):
        container = _container(template)

        assert container["Image"] == "lscr.io/linuxserver/bookstack:24.10.20241031"
        assert [m["ContainerPort"] for m in container["PortMappings"]] == [80]

    def test_environment_variables(self, environment):
        assert environment["APP_LANG"] == "en"
        assert environment["APP_URL"] == "https://wiki.dev.example.com"
        assert environment["DB_USERNAME"] == "bookstack"
        assert environment["DB_PORT"] == "3306"
        assert environment["DB_DATABASE"] == "bookstack"
        assert environment["STORAGE_TYPE"] == "s3"
        assert environment["STORAGE_S3_REGION"] == "us-west-2"
        assert "Ref" in environment["STORAGE_S3_BUCKET"]

    def test_db_host_comes_from_data_stack(self, stage, environment):
        """DB_HOST is imported from the data layer, never declared here"""
        data_template = assertions.Template.from_stack(stage.database_stack).to_json()
        exports = {
            output["Export"]["Name"]
            for output in data_template["Outputs"].values()
            if "Export" in output
        }

        assert environment["DB_HOST"]["Fn::ImportValue"] in exports

    def test_secrets_are_references(self, environment, secrets):
        """Key material is bound as ECS secrets, not plaintext environment"""
        assert "APP_KEY" not in environment
        assert "DB_PASSWORD" not in environment

        assert set(secrets) == {"DB_PASSWORD", "APP_KEY"}
        assert ":password::" in json.dumps(secrets["DB_PASSWORD"])
        assert "Fn::ImportValue" in json.dumps(secrets["DB_PASSWORD"])
        assert "parameter/app/bookstack/app_key" in json.dumps(secrets["APP_KEY"])

    def test_execution_role_reads_secrets(self, stack, template):
        role_id = stack.get_logical_id(stack.service_construct.execution_role.node.default_child)
        policies = [
            policy
            for policy in template.find_resources("AWS::IAM::Policy").values()
            if {"Ref": role_id} in policy["Properties"]["Roles"]
        ]
        document = json.dumps(policies)

        assert "secretsmanager:GetSecretValue" in document
        assert "ssm:GetParameters" in document
        assert "secretsmanager:PutSecretValue" not in document

    def test_service_deployment(self, template):
        template.has_resource_properties(
            "AWS::ECS::Service",
            {
                "DesiredCount": 1,
                "LaunchType": "FARGATE",
                "DeploymentConfiguration": {
                    "DeploymentCircuitBreaker": {"Enable": True, "Rollback": True},
                },
            },
        )

    def test_http_listener_only_redirects(self, template):
        listener = _listener(template, 80)

        assert listener["Properties"]["Protocol"] == "HTTP"
        assert listener["Properties"]["DefaultActions"] == [
            {
                "Type": "redirect",
                "RedirectConfig": {
                    "Protocol": "HTTPS",
                    "Port": "443",
                    "StatusCode": "HTTP_301",
                },
            }
        ]
        template.resource_count_is("AWS::ElasticLoadBalancingV2::ListenerRule", 0)

    def test_https_listener_forwards_to_service(self, template):
        listener = _listener(template, 443)
        (action,) = listener["Properties"]["DefaultActions"]

        assert listener["Properties"]["Protocol"] == "HTTPS"
        assert len(listener["Properties"]["Certificates"]) == 1
        assert action["Type"] == "forward"

    def test_target_health_check(self, template):
        template.has_resource_properties(
            "AWS::ElasticLoadBalancingV2::TargetGroup",
            {
                "Port": 80,
                "Protocol": "HTTP",
                "TargetType": "ip",
                "HealthCheckPath": "/",
                "Matcher": {"HttpCode": "200-399"},
            },
        )

    def test_certificate_dns_validated(self, template):
        template.has_resource_properties(
            "AWS::CertificateManager::Certificate",
            {
                "DomainName": "wiki.dev.example.com",
                "ValidationMethod": "DNS",
                "DomainValidationOptions": [
                    {
                        "DomainName": "wiki.dev.example.com",
                        "HostedZoneId": "Z0123456789ABCDEFGHIJ",
                    }
                ],
            },
        )

    def test_dns_alias_record(self, template):
        template.resource_count_is("AWS::Route53::RecordSet", 1)
        template.has_resource_properties(
            "AWS::Route53::RecordSet",
            {
                "Name": "wiki.dev.example.com.",
                "Type": "A",
                "HostedZoneId": "Z0123456789ABCDEFGHIJ",
                "AliasTarget": assertions.Match.any_value(),
            },
        )

    def test_service_ingress_only_from_load_balancer(self, stack, template):
        service_sg = stack.get_logical_id(
            stack.service_construct.security_group.node.default_child
        )
        alb_sg = stack.get_logical_id(stack.edge.security_group.node.default_child)

        service_sg_resource = template.find_resources("AWS::EC2::SecurityGroup")[service_sg]
        assert "SecurityGroupIngress" not in service_sg_resource["Properties"]

        rules = [
            rule["Properties"]
            for rule in template.find_resources("AWS::EC2::SecurityGroupIngress").values()
            if rule["Properties"]["GroupId"] == {"Fn::GetAtt": [service_sg, "GroupId"]}
        ]
        assert rules
        for rule in rules:
            assert rule["SourceSecurityGroupId"] == {"Fn::GetAtt": [alb_sg, "GroupId"]}
            assert rule["FromPort"] == 80
            assert rule["ToPort"] == 80

    def test_load_balancer_is_public(self, template):
        template.has_resource_properties(
            "AWS::ElasticLoadBalancingV2::LoadBalancer",
            {"Scheme": "internet-facing", "Type": "application"},
        )

    def test_bucket_is_private(self, template):
        template.has_resource_properties(
            "AWS::S3::Bucket",
            {
                "PublicAccessBlockConfiguration": {
                    "BlockPublicAcls": True,
                    "BlockPublicPolicy": True,
                    "IgnorePublicAcls": True,
                    "RestrictPublicBuckets": True,
                }
            },
        )

    def test_dev_bucket_auto_deletes(self, template):
        template.has_resource("AWS::S3::Bucket", {"DeletionPolicy": "Delete"})
        template.resource_count_is("Custom::S3AutoDeleteObjects", 1)

    def test_alarms(self, template):
        template.resource_count_is("AWS::CloudWatch::Alarm", 3)

    def test_outputs(self, template):
        template.has_output("AppUrl", {"Value": "https://wiki.dev.example.com"})
        template.has_output("ClusterName", {})
        template.has_output("ServiceName", {})
