from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class ClientBrokerEncryption(str, Enum):
    """Encryption setting for traffic between clients and brokers."""

    TLS = "TLS"  # TLS only
    TLS_PLAINTEXT = "TLS_PLAINTEXT"  # both TLS and plaintext
    PLAINTEXT = "PLAINTEXT"  # plaintext only


class ClusterMonitoringLevel(str, Enum):
    """Enhanced monitoring level for the cluster."""

    DEFAULT = "DEFAULT"
    PER_BROKER = "PER_BROKER"
    PER_TOPIC_PER_BROKER = "PER_TOPIC_PER_BROKER"
    PER_TOPIC_PER_PARTITION = "PER_TOPIC_PER_PARTITION"


class RemovalPolicy(str, Enum):
    """What happens to the cluster when it is removed from the program."""

    RETAIN = "retain"
    DESTROY = "destroy"


class EbsStorageConfig(BaseModel):
    """EBS volume attached to each broker."""

    # Range is checked by validation so that every problem is reported at once.
    volume_size: int = Field(default=1000, description="Volume size in GiB")
    encryption_kms_key_arn: Optional[str] = Field(
        default=None,
        description="KMS key for data at rest (MSK managed key if not set)",
    )


class ConfigurationInfo(BaseModel):
    """An existing MSK configuration to apply to the brokers."""

    arn: str = Field(..., pattern=r"^arn:aws[a-z-]*:kafka:.+:configuration/.+$")
    revision: int = Field(..., ge=1)


class EncryptionInTransitConfig(BaseModel):
    """Encryption of data in transit."""

    client_broker: ClientBrokerEncryption = Field(default=ClientBrokerEncryption.TLS)
    enable_in_cluster: bool = Field(
        default=True,
        description="Encrypt traffic between brokers",
    )


class SaslAuthConfig(BaseModel):
    """SASL client authentication mechanisms."""

    scram: bool = Field(default=False, description="Enable SASL/SCRAM")
    iam: bool = Field(default=False, description="Enable SASL/IAM")


class TlsAuthConfig(BaseModel):
    """Mutual TLS client authentication."""

    certificate_authority_arns: list[str] = Field(
        default_factory=list,
        description="ACM Private CA ARNs trusted for client certificates",
    )


class ClientAuthenticationConfig(BaseModel):
    """Client authentication. Setting this block at all requires TLS in transit."""

    sasl: Optional[SaslAuthConfig] = None
    tls: Optional[TlsAuthConfig] = None

    @property
    def scram_enabled(self) -> bool:
        return bool(self.sasl and self.sasl.scram)

    @property
    def iam_enabled(self) -> bool:
        return bool(self.sasl and self.sasl.iam)


class MonitoringConfig(BaseModel):
    """Enhanced monitoring and Prometheus open monitoring."""

    level: ClusterMonitoringLevel = Field(default=ClusterMonitoringLevel.DEFAULT)
    enable_prometheus_jmx_exporter: bool = Field(default=False)
    enable_prometheus_node_exporter: bool = Field(default=False)


class S3LoggingConfig(BaseModel):
    bucket: str
    prefix: Optional[str] = None


class BrokerLoggingConfig(BaseModel):
    """Broker log destinations. A destination is enabled when it is set."""

    cloudwatch_log_group: Optional[str] = Field(default=None, description="CloudWatch log group name")
    firehose_delivery_stream: Optional[str] = Field(default=None, description="Firehose delivery stream name")
    s3: Optional[S3LoggingConfig] = None


class KafkaClusterConfig(BaseModel):
    """Provisioned MSK cluster configuration."""

    cluster_name: Optional[str] = Field(
        default=None,
        description="Physical cluster name (derived from the resource name if not set)",
    )
    kafka_version: str = Field(..., description="Apache Kafka version, e.g. 3.6.0")
    instance_type: str = Field(
        default="t3.small",
        description="Broker EC2 instance type, without the kafka. prefix",
    )
    number_of_broker_nodes: Optional[int] = Field(
        default=None,
        ge=1,
        description="Broker count (one per client subnet if not set)",
    )
    az_distribution: str = Field(default="DEFAULT")
    ebs_storage: EbsStorageConfig = Field(default_factory=EbsStorageConfig)
    configuration_info: Optional[ConfigurationInfo] = None
    encryption_in_transit: EncryptionInTransitConfig = Field(default_factory=EncryptionInTransitConfig)
    client_authentication: Optional[ClientAuthenticationConfig] = None
    monitoring: MonitoringConfig = Field(default_factory=MonitoringConfig)
    logging: BrokerLoggingConfig = Field(default_factory=BrokerLoggingConfig)
    removal_policy: RemovalPolicy = Field(default=RemovalPolicy.RETAIN)
    tags: dict[str, str] = Field(default_factory=dict)

    @field_validator("instance_type")
    @classmethod
    def strip_kafka_prefix(cls, v: str) -> str:
        return v[len("kafka."):] if v.startswith("kafka.") else v


class ValidationErrorDetail(BaseModel):
    """A single configuration problem."""

    field: str
    message: str
    value: Optional[str] = None
