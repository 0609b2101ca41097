from aws_cdk import Stack, Token, aws_ec2 as ec2
from constructs import Construct

from config.environments import NetworkConfig
from config.errors import ConfigurationError


def lookup_vpc(scope: Construct, construct_id: str, config: NetworkConfig) -> ec2.IVpc:
    """
    Resolve the existing VPC the environment deploys into.

    Lookups need a concrete account and region on the owning stack, so an
    environment-agnostic stack is rejected here before anything is declared.
    """
    stack = Stack.of(scope)
    if Token.is_unresolved(stack.account) or Token.is_unresolved(stack.region):
        raise ConfigurationError(
            f"Stack {stack.stack_name} needs an explicit account and region "
            f"to resolve VPC {config.vpc_id}"
        )

    return ec2.Vpc.from_lookup(scope, construct_id, vpc_id=config.vpc_id)


def subnet_selection(subnet_type: str) -> ec2.SubnetSelection:
    return ec2.SubnetSelection(subnet_type=getattr(ec2.SubnetType, subnet_type))
