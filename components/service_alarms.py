from aws_cdk import (
    aws_cloudwatch as cloudwatch,
    aws_cloudwatch_actions as cw_actions,
    aws_ecs as ecs,
    aws_elasticloadbalancingv2 as elbv2,
    aws_sns as sns,
)
from constructs import Construct


class ServiceAlarms(Construct):
    """
    CloudWatch alarms for the public BookStack service
    """

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        service: ecs.FargateService,
        load_balancer: elbv2.ApplicationLoadBalancer,
        target_group: elbv2.ApplicationTargetGroup,
        notification_topic: sns.ITopic,
        **kwargs,
    ) -> None:
        super().__init__(scope, construct_id, **kwargs)

        self.notification_topic = notification_topic

        self._alarm(
            "UnhealthyTargetsAlarm",
            target_group.metrics.unhealthy_host_count(),
            threshold=1,
            description="Unhealthy BookStack targets detected",
        )

        self._alarm(
            "TargetErrorsAlarm",
            load_balancer.metrics.http_code_target(elbv2.HttpCodeTarget.TARGET_5XX_COUNT),
            threshold=10,
            description="BookStack is returning 5XX responses",
        )

        self._alarm(
            "ServiceCPUAlarm",
            service.metric_cpu_utilization(),
            threshold=85,
            description="BookStack service CPU utilization is high",
        )

    def _alarm(self, construct_id: str, metric: cloudwatch.IMetric, threshold: float, description: str):
        alarm = cloudwatch.Alarm(
            self,
            construct_id,
            metric=metric,
            threshold=threshold,
            evaluation_periods=2,
            treat_missing_data=cloudwatch.TreatMissingData.NOT_BREACHING,
            alarm_description=description,
        )
        alarm.add_alarm_action(cw_actions.SnsAction(self.notification_topic))
        return alarm
