from aws_cdk import (
    aws_certificatemanager as acm,
    aws_ec2 as ec2,
    aws_elasticloadbalancingv2 as elbv2,
    aws_route53 as route53,
    aws_route53_targets as targets,
    Duration,
    Tags,
)
from constructs import Construct

from config.environments import DnsConfig


class PublicEdge(Construct):
    """
    Internet-facing entry point: ALB, TLS certificate and DNS alias.

    Port 80 only redirects to HTTPS. Port 443 terminates TLS with a
    DNS-validated certificate and forwards to whatever is attached through
    ``attach_service``.
    """

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        vpc: ec2.IVpc,
        dns: DnsConfig,
        **kwargs,
    ) -> None:
        super().__init__(scope, construct_id, **kwargs)

        self.dns = dns

        self.hosted_zone = route53.HostedZone.from_hosted_zone_attributes(
            self,
            "HostedZone",
            hosted_zone_id=dns.hosted_zone_id,
            zone_name=dns.zone_name,
        )

        # Deploy blocks until the validation record resolves
        self.certificate = acm.Certificate(
            self,
            "Certificate",
            domain_name=dns.app_host,
            validation=acm.CertificateValidation.from_dns(self.hosted_zone),
        )

        self.security_group = ec2.SecurityGroup(
            self,
            "ALBSG",
            vpc=vpc,
            description="Security group for BookStack ALB",
            allow_all_outbound=True,
        )
        self.security_group.add_ingress_rule(ec2.Peer.any_ipv4(), ec2.Port.tcp(80))
        self.security_group.add_ingress_rule(ec2.Peer.any_ipv4(), ec2.Port.tcp(443))

        self.load_balancer = elbv2.ApplicationLoadBalancer(
            self,
            "LoadBalancer",
            vpc=vpc,
            internet_facing=True,
            vpc_subnets=ec2.SubnetSelection(subnet_type=ec2.SubnetType.PUBLIC),
            security_group=self.security_group,
        )

        self.http_listener = self.load_balancer.add_listener(
            "HttpListener",
            port=80,
            protocol=elbv2.ApplicationProtocol.HTTP,
            open=False,
            default_action=elbv2.ListenerAction.redirect(
                protocol="HTTPS",
                port="443",
                permanent=True,
            ),
        )

        self.https_listener = self.load_balancer.add_listener(
            "HttpsListener",
            port=443,
            protocol=elbv2.ApplicationProtocol.HTTPS,
            open=False,
            certificates=[elbv2.ListenerCertificate.from_certificate_manager(self.certificate)],
            ssl_policy=elbv2.SslPolicy.RECOMMENDED_TLS,
        )

        self.dns_record = route53.ARecord(
            self,
            "AliasRecord",
            zone=self.hosted_zone,
            record_name=dns.record_name or None,
            target=route53.RecordTarget.from_alias(
                targets.LoadBalancerTarget(self.load_balancer)
            ),
        )

        Tags.of(self).add("Component", "Edge")

    def attach_service(
        self,
        target: elbv2.IApplicationLoadBalancerTarget,
        port: int,
        health_check_path: str,
        healthy_http_codes: str,
    ) -> elbv2.ApplicationTargetGroup:
        """Forward HTTPS traffic to the service"""
        self.target_group = self.https_listener.add_targets(
            "Service",
            port=port,
            protocol=elbv2.ApplicationProtocol.HTTP,
            targets=[target],
            deregistration_delay=Duration.seconds(30),
            health_check=elbv2.HealthCheck(
                enabled=True,
                path=health_check_path,
                healthy_http_codes=healthy_http_codes,
                protocol=elbv2.Protocol.HTTP,
                timeout=Duration.seconds(5),
                interval=Duration.seconds(30),
                healthy_threshold_count=2,
                unhealthy_threshold_count=3,
            ),
        )
        return self.target_group
