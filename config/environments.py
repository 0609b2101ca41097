import ipaddress
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping, Optional, Tuple

from config.errors import ConfigurationError


@dataclass(frozen=True)
class NetworkConfig:
    vpc_id: str
    vpc_cidr: str

    def __post_init__(self):
        if not self.vpc_id.startswith("vpc-"):
            raise ConfigurationError(f"Invalid VPC id: {self.vpc_id!r}")
        try:
            ipaddress.IPv4Network(self.vpc_cidr)
        except ValueError as e:
            raise ConfigurationError(f"Invalid VPC CIDR {self.vpc_cidr!r}: {e}") from e


@dataclass(frozen=True)
class DnsConfig:
    zone_name: str
    hosted_zone_id: str
    app_host: str

    def __post_init__(self):
        if self.app_host != self.zone_name and not self.app_host.endswith(
            f".{self.zone_name}"
        ):
            raise ConfigurationError(
                f"Host {self.app_host!r} is outside hosted zone {self.zone_name!r}"
            )

    @property
    def record_name(self) -> str:
        """Host relative to the zone ("" for the zone apex)"""
        if self.app_host == self.zone_name:
            return ""
        return self.app_host[: -(len(self.zone_name) + 1)]

    @property
    def app_url(self) -> str:
        return f"https://{self.app_host}"


@dataclass(frozen=True)
class DatabaseConfig:
    engine_version: str
    min_capacity: float
    max_capacity: float
    backup_retention_days: int
    backup_window: str
    maintenance_window: str
    database_name: str = "bookstack"
    username: str = "bookstack"
    port: int = 3306
    password_length: int = 30
    deletion_protection: bool = True

    def __post_init__(self):
        if self.min_capacity < 0:
            raise ConfigurationError("Database min_capacity cannot be negative")
        if self.max_capacity < 1 or self.max_capacity < self.min_capacity:
            raise ConfigurationError(
                f"Invalid database capacity bounds "
                f"({self.min_capacity}, {self.max_capacity})"
            )
        if self.backup_retention_days < 1:
            raise ConfigurationError("Backup retention must be at least one day")


@dataclass(frozen=True)
class ServiceConfig:
    image: str
    image_tag: str
    cpu: int = 1024
    memory_mib: int = 2048
    desired_count: int = 1
    container_port: int = 80
    cpu_architecture: str = "ARM64"
    health_check_path: str = "/"
    healthy_http_codes: str = "200-399"
    app_key_parameter: str = "/app/bookstack/app_key"
    app_lang: str = "en"
    subnet_type: str = "PRIVATE_WITH_EGRESS"
    assign_public_ip: bool = False

    def __post_init__(self):
        if self.cpu <= 0 or self.memory_mib <= 0:
            raise ConfigurationError("Service cpu and memory must be positive")
        if self.desired_count < 0:
            raise ConfigurationError("Service desired_count cannot be negative")
        if self.cpu_architecture not in ("ARM64", "X86_64"):
            raise ConfigurationError(
                f"Unsupported CPU architecture: {self.cpu_architecture!r}"
            )
        if self.subnet_type not in ("PUBLIC", "PRIVATE_WITH_EGRESS", "PRIVATE_ISOLATED"):
            raise ConfigurationError(f"Unsupported subnet type: {self.subnet_type!r}")

    @property
    def image_uri(self) -> str:
        return f"{self.image}:{self.image_tag}"


@dataclass(frozen=True)
class EnvironmentConfig:
    environment_name: str
    account: str
    region: str
    log_level: str
    network: NetworkConfig
    dns: DnsConfig
    database: DatabaseConfig
    service: ServiceConfig
    is_production: bool = False
    require_approval: bool = False

    @property
    def stack_prefix(self) -> str:
        return f"BookStack-{self.environment_name}"


@dataclass(frozen=True)
class WaveConfig:
    name: str
    environments: Tuple[str, ...]


@dataclass(frozen=True)
class PipelineConfig:
    account: str
    region: str
    pipeline_name: str
    repository: str
    branch: str
    connection_arn: str
    build_commands: Tuple[str, ...]
    waves: Tuple[WaveConfig, ...] = field(default_factory=tuple)

    def __post_init__(self):
        if not self.build_commands:
            raise ConfigurationError("Pipeline needs at least one build command")


# Symbolic environment keys -> environment descriptors
ENVIRONMENTS: Mapping[str, EnvironmentConfig] = MappingProxyType(
    {
        "DevOregon": EnvironmentConfig(
            environment_name="dev",
            account="111111111111",
            region="us-west-2",
            log_level="DEBUG",
            network=NetworkConfig(
                vpc_id="vpc-0a1b2c3d4e5f60718",
                vpc_cidr="10.20.0.0/16",
            ),
            dns=DnsConfig(
                zone_name="dev.example.com",
                hosted_zone_id="Z0123456789ABCDEFGHIJ",
                app_host="wiki.dev.example.com",
            ),
            database=DatabaseConfig(
                engine_version="8.0.mysql_aurora.3.08.0",
                min_capacity=0,
                max_capacity=2,
                backup_retention_days=7,
                backup_window="03:00-04:00",
                maintenance_window="sun:04:30-sun:05:30",
            ),
            service=ServiceConfig(
                image="lscr.io/linuxserver/bookstack",
                image_tag="24.10.20241031",
            ),
        ),
    }
)

PIPELINE_CONFIG = PipelineConfig(
    account="111111111111",
    region="us-west-2",
    pipeline_name="bookstack-infra",
    repository="example-org/bookstack-infra",
    branch="main",
    connection_arn=(
        "arn:aws:codestar-connections:us-west-2:111111111111:"
        "connection/00000000-0000-0000-0000-000000000000"
    ),
    build_commands=(
        "npm install -g aws-cdk",
        "pip install -e '.[test]'",
        "python -m compileall -q app.py config stacks components scripts",
        "python -m pytest",
        "cdk synth",
    ),
    waves=(WaveConfig(name="Dev", environments=("DevOregon",)),),
)


def get_environment_config(
    key: str, registry: Optional[Mapping[str, EnvironmentConfig]] = None
) -> EnvironmentConfig:
    """Resolve an environment descriptor by its symbolic key"""
    registry = ENVIRONMENTS if registry is None else registry
    try:
        return registry[key]
    except KeyError:
        raise ConfigurationError(
            f"Unknown environment {key!r}. Available environments: "
            f"{', '.join(sorted(registry))}"
        ) from None


def validate_pipeline_config(
    pipeline: PipelineConfig, registry: Optional[Mapping[str, EnvironmentConfig]] = None
) -> None:
    """Check every wave points at registered environments"""
    for wave in pipeline.waves:
        if not wave.environments:
            raise ConfigurationError(f"Wave {wave.name!r} has no environments")
        for key in wave.environments:
            get_environment_config(key, registry)
