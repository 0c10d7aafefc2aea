import json
import logging
from dataclasses import dataclass, field
from typing import Optional

import pulumi

from infra.models import (
    BrokerLoggingConfig,
    ClientAuthenticationConfig,
    ClientBrokerEncryption,
    ClusterMonitoringLevel,
    ConfigurationInfo,
    EbsStorageConfig,
    EncryptionInTransitConfig,
    KafkaClusterConfig,
    MonitoringConfig,
    RemovalPolicy,
    S3LoggingConfig,
    SaslAuthConfig,
    TlsAuthConfig,
)

logger = logging.getLogger(__name__)


@dataclass
class KafkaClientConfig:
    """IAM client role settings."""

    service: Optional[str]
    topics: list[str]
    consumer_groups: list[str]
    allow_write: bool


@dataclass
class KafkaProgramConfig:
    """Program configuration loaded from Pulumi config for use in infrastructure code."""

    name: str
    environment: str
    aws_region: str

    # Network placement
    vpc_id: str
    subnet_ids: list[str]
    security_group_ids: list[str]
    client_security_group_id: Optional[str]

    cluster: KafkaClusterConfig
    client: Optional[KafkaClientConfig]
    scram_users: list[str] = field(default_factory=list)

    # Global tags
    tags: dict[str, str] = field(default_factory=dict)


def _parse_list(value: Optional[str], default: Optional[list[str]] = None) -> list[str]:
    """Parse a comma-separated string into a list."""
    if value is None:
        return default or []
    return [item.strip() for item in value.split(",") if item.strip()]


def _parse_bool(value: Optional[str], default: bool = False) -> bool:
    """Parse a string boolean value."""
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes")


def _parse_int(value: Optional[str], default: Optional[int] = None) -> Optional[int]:
    if value is None or value == "":
        return default
    return int(value)


def _parse_json(value: Optional[str], default: dict | list | None = None) -> dict | list | None:
    """Parse a JSON string."""
    if value is None:
        return default
    try:
        return json.loads(value)
    except json.JSONDecodeError:
        logger.warning("Ignoring malformed JSON config value: %r", value)
        return default


def _load_client_authentication(config: pulumi.Config) -> Optional[ClientAuthenticationConfig]:
    """Load client authentication. Returns None when no mechanism is configured."""
    scram = _parse_bool(config.get("saslScram"), False)
    iam = _parse_bool(config.get("saslIam"), False)
    ca_arns = _parse_list(config.get("tlsCertificateAuthorityArns"), [])

    if not (scram or iam or ca_arns):
        return None

    return ClientAuthenticationConfig(
        sasl=SaslAuthConfig(scram=scram, iam=iam) if (scram or iam) else None,
        tls=TlsAuthConfig(certificate_authority_arns=ca_arns) if ca_arns else None,
    )


def _load_logging(config: pulumi.Config) -> BrokerLoggingConfig:
    bucket = config.get("logBucket")
    return BrokerLoggingConfig(
        cloudwatch_log_group=config.get("logGroup"),
        firehose_delivery_stream=config.get("firehoseDeliveryStream"),
        s3=S3LoggingConfig(bucket=bucket, prefix=config.get("logPrefix")) if bucket else None,
    )


def _load_configuration_info(config: pulumi.Config) -> Optional[ConfigurationInfo]:
    arn = config.get("configurationArn")
    if not arn:
        return None
    return ConfigurationInfo(
        arn=arn,
        revision=_parse_int(config.get("configurationRevision"), 1),
    )


def load_cluster_config(config: pulumi.Config) -> KafkaClusterConfig:
    """Load the MSK cluster configuration from Pulumi config."""
    return KafkaClusterConfig(
        cluster_name=config.get("clusterName"),
        kafka_version=config.require("kafkaVersion"),
        instance_type=config.get("instanceType") or "t3.small",
        number_of_broker_nodes=_parse_int(config.get("numberOfBrokerNodes")),
        az_distribution=config.get("azDistribution") or "DEFAULT",
        ebs_storage=EbsStorageConfig(
            volume_size=_parse_int(config.get("ebsVolumeSize"), 1000),
            encryption_kms_key_arn=config.get("ebsKmsKeyArn"),
        ),
        configuration_info=_load_configuration_info(config),
        encryption_in_transit=EncryptionInTransitConfig(
            client_broker=ClientBrokerEncryption(config.get("clientBroker") or "TLS"),
            enable_in_cluster=_parse_bool(config.get("inClusterEncryption"), True),
        ),
        client_authentication=_load_client_authentication(config),
        monitoring=MonitoringConfig(
            level=ClusterMonitoringLevel(config.get("monitoringLevel") or "DEFAULT"),
            enable_prometheus_jmx_exporter=_parse_bool(config.get("prometheusJmxExporter"), False),
            enable_prometheus_node_exporter=_parse_bool(config.get("prometheusNodeExporter"), False),
        ),
        logging=_load_logging(config),
        removal_policy=RemovalPolicy(config.get("removalPolicy") or "retain"),
        tags=dict(_parse_json(config.get("clusterTags"), {}) or {}),
    )


def _load_client(config: pulumi.Config) -> Optional[KafkaClientConfig]:
    if not _parse_bool(config.get("clientRoleEnabled"), False):
        return None

    return KafkaClientConfig(
        service=config.get("clientService") or "ec2.amazonaws.com",
        topics=_parse_list(config.get("clientTopics"), ["*"]),
        consumer_groups=_parse_list(config.get("clientGroups"), ["*"]),
        allow_write=_parse_bool(config.get("clientAllowWrite"), False),
    )


def load_program_config() -> KafkaProgramConfig:
    """Load program configuration from Pulumi config."""
    config = pulumi.Config()

    name = config.require("name")
    environment = config.get("environment") or "prod"
    aws_region = config.get("awsRegion") or "us-east-1"

    tags: dict[str, str] = {
        "Environment": environment,
        "ManagedBy": "pulumi",
    }
    custom_tags = _parse_json(config.get("tags"), {})
    if custom_tags and isinstance(custom_tags, dict):
        tags.update(custom_tags)

    return KafkaProgramConfig(
        name=name,
        environment=environment,
        aws_region=aws_region,
        vpc_id=config.require("vpcId"),
        subnet_ids=_parse_list(config.require("subnetIds")),
        security_group_ids=_parse_list(config.get("securityGroupIds"), []),
        client_security_group_id=config.get("clientSecurityGroupId"),
        cluster=load_cluster_config(config),
        client=_load_client(config),
        scram_users=_parse_list(config.get("scramUsers"), []),
        tags=tags,
    )
