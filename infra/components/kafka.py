import json
import logging
from typing import Any, Optional, Sequence

import pulumi
import pulumi_aws as aws

from infra.lookups import BootstrapBrokersField, LookupHandle, LookupRegistry, ZookeeperField
from infra.models import (
    ClientBrokerEncryption,
    KafkaClusterConfig,
    RemovalPolicy,
    ValidationErrorDetail,
)
from infra.validation import validate_cluster_config

logger = logging.getLogger(__name__)

GET_BOOTSTRAP_BROKERS = "GetBootstrapBrokers"
DESCRIBE_CLUSTER = "DescribeCluster"

# MSK only accepts SCRAM secrets whose name starts with this prefix.
SCRAM_SECRET_PREFIX = "AmazonMSK_"

PORT_PLAINTEXT = 9092
PORT_TLS = 9094
PORT_SASL_SCRAM = 9096
PORT_SASL_IAM = 9098


class ConnectionsUnavailableError(Exception):
    """Raised when network access is managed on a cluster that does not own its security groups."""


def default_client_port(config: KafkaClusterConfig) -> int:
    """Broker port clients use for the configured authentication mode."""
    auth = config.client_authentication
    if auth is not None and auth.iam_enabled:
        return PORT_SASL_IAM
    if auth is not None and auth.scram_enabled:
        return PORT_SASL_SCRAM
    if config.encryption_in_transit.client_broker == ClientBrokerEncryption.PLAINTEXT:
        return PORT_PLAINTEXT
    return PORT_TLS


def _parse_cluster_name(cluster_arn: str) -> str:
    # arn:aws:kafka:<region>:<account>:cluster/<name>/<uuid>
    parts = cluster_arn.split("/")
    if len(parts) < 3 or not parts[0].endswith(":cluster") or not parts[1]:
        raise ValueError(
            f"Invalid MSK cluster ARN '{cluster_arn}': expected '...:cluster/<name>/<uuid>'"
        )
    return parts[1]


def _cluster_name_from_arn(cluster_arn: pulumi.Input[str]) -> pulumi.Input[str]:
    if isinstance(cluster_arn, pulumi.Output):
        return cluster_arn.apply(_parse_cluster_name)
    return _parse_cluster_name(cluster_arn)


def build_cluster_args(
    cluster_name: pulumi.Input[str],
    config: KafkaClusterConfig,
    subnet_ids: pulumi.Input[Sequence[str]],
    security_group_ids: Sequence[pulumi.Input[str]],
    tags: dict[str, str] | None = None,
) -> dict[str, Any]:
    """Arguments for ``aws.msk.Cluster`` built from the cluster configuration."""
    if config.number_of_broker_nodes is not None:
        number_of_broker_nodes: pulumi.Input[int] = config.number_of_broker_nodes
    elif isinstance(subnet_ids, pulumi.Output):
        number_of_broker_nodes = subnet_ids.apply(len)
    else:
        number_of_broker_nodes = len(subnet_ids)

    cluster_args: dict[str, Any] = {
        "cluster_name": cluster_name,
        "kafka_version": config.kafka_version,
        "number_of_broker_nodes": number_of_broker_nodes,
        "broker_node_group_info": aws.msk.ClusterBrokerNodeGroupInfoArgs(
            client_subnets=subnet_ids,
            instance_type=f"kafka.{config.instance_type}",
            az_distribution=config.az_distribution,
            security_groups=list(security_group_ids),
            storage_info=aws.msk.ClusterBrokerNodeGroupInfoStorageInfoArgs(
                ebs_storage_info=aws.msk.ClusterBrokerNodeGroupInfoStorageInfoEbsStorageInfoArgs(
                    volume_size=config.ebs_storage.volume_size,
                ),
            ),
        ),
        "encryption_info": aws.msk.ClusterEncryptionInfoArgs(
            encryption_at_rest_kms_key_arn=config.ebs_storage.encryption_kms_key_arn,
            encryption_in_transit=aws.msk.ClusterEncryptionInfoEncryptionInTransitArgs(
                client_broker=config.encryption_in_transit.client_broker.value,
                in_cluster=config.encryption_in_transit.enable_in_cluster,
            ),
        ),
        "enhanced_monitoring": config.monitoring.level.value,
        "logging_info": _build_logging_info(config),
        "tags": {"Name": cluster_name, **(tags or {}), **config.tags},
    }

    auth = config.client_authentication
    if auth is not None:
        auth_args: dict[str, Any] = {}
        if auth.sasl is not None:
            auth_args["sasl"] = aws.msk.ClusterClientAuthenticationSaslArgs(
                scram=auth.sasl.scram,
                iam=auth.sasl.iam,
            )
        if auth.tls is not None:
            auth_args["tls"] = aws.msk.ClusterClientAuthenticationTlsArgs(
                certificate_authority_arns=auth.tls.certificate_authority_arns,
            )
        cluster_args["client_authentication"] = aws.msk.ClusterClientAuthenticationArgs(**auth_args)

    if config.configuration_info is not None:
        cluster_args["configuration_info"] = aws.msk.ClusterConfigurationInfoArgs(
            arn=config.configuration_info.arn,
            revision=config.configuration_info.revision,
        )

    monitoring = config.monitoring
    if monitoring.enable_prometheus_jmx_exporter or monitoring.enable_prometheus_node_exporter:
        prometheus_args: dict[str, Any] = {}
        if monitoring.enable_prometheus_jmx_exporter:
            prometheus_args["jmx_exporter"] = aws.msk.ClusterOpenMonitoringPrometheusJmxExporterArgs(
                enabled_in_broker=True,
            )
        if monitoring.enable_prometheus_node_exporter:
            prometheus_args["node_exporter"] = aws.msk.ClusterOpenMonitoringPrometheusNodeExporterArgs(
                enabled_in_broker=True,
            )
        cluster_args["open_monitoring"] = aws.msk.ClusterOpenMonitoringArgs(
            prometheus=aws.msk.ClusterOpenMonitoringPrometheusArgs(**prometheus_args),
        )

    return cluster_args


def _build_logging_info(config: KafkaClusterConfig) -> aws.msk.ClusterLoggingInfoArgs:
    logging_config = config.logging
    s3 = logging_config.s3

    return aws.msk.ClusterLoggingInfoArgs(
        broker_logs=aws.msk.ClusterLoggingInfoBrokerLogsArgs(
            cloudwatch_logs=aws.msk.ClusterLoggingInfoBrokerLogsCloudwatchLogsArgs(
                enabled=logging_config.cloudwatch_log_group is not None,
                log_group=logging_config.cloudwatch_log_group,
            ),
            firehose=aws.msk.ClusterLoggingInfoBrokerLogsFirehoseArgs(
                enabled=logging_config.firehose_delivery_stream is not None,
                delivery_stream=logging_config.firehose_delivery_stream,
            ),
            s3=aws.msk.ClusterLoggingInfoBrokerLogsS3Args(
                enabled=s3 is not None,
                bucket=s3.bucket if s3 else None,
                prefix=s3.prefix if s3 else None,
            ),
        ),
    )


class Connections:
    """Ingress management for the security groups attached to a cluster."""

    def __init__(
        self,
        name: str,
        security_group_ids: Sequence[pulumi.Input[str]],
        default_port: int,
        opts: pulumi.ResourceOptions,
    ):
        self._name = name
        self._opts = opts
        self.security_group_ids = list(security_group_ids)
        self.default_port = default_port

    def allow_from(
        self,
        rule_name: str,
        source_security_group_id: pulumi.Input[str],
        port: int | None = None,
        description: str | None = None,
    ) -> list[aws.ec2.SecurityGroupRule]:
        """Allow TCP traffic from another security group to every cluster security group."""
        port = port or self.default_port
        rules = []
        for i, security_group_id in enumerate(self.security_group_ids):
            rules.append(
                aws.ec2.SecurityGroupRule(
                    f"{self._name}-msk-{rule_name}-ingress-{i}",
                    type="ingress",
                    security_group_id=security_group_id,
                    source_security_group_id=source_security_group_id,
                    protocol="tcp",
                    from_port=port,
                    to_port=port,
                    description=description or f"Kafka clients on port {port}",
                    opts=self._opts,
                )
            )
        return rules


class _KafkaClusterLookups:
    """Bootstrap broker and ZooKeeper lookups shared by owned and imported clusters."""

    lookups: LookupRegistry

    def _create_lookups(
        self,
        cluster_arn: pulumi.Input[str],
        cluster_name: pulumi.Input[str],
        invoke_opts: pulumi.InvokeOptions | None,
    ) -> LookupRegistry:
        return LookupRegistry(
            {
                GET_BOOTSTRAP_BROKERS: lambda: aws.msk.get_bootstrap_brokers_output(
                    cluster_arn=cluster_arn,
                    opts=invoke_opts,
                ),
                DESCRIBE_CLUSTER: lambda: aws.msk.get_cluster_output(
                    cluster_name=cluster_name,
                    opts=invoke_opts,
                ),
            }
        )

    def bootstrap_brokers(
        self, field: BootstrapBrokersField = BootstrapBrokersField.TLS
    ) -> LookupHandle:
        """Broker list a client application can use to bootstrap."""
        return self.lookups.register(GET_BOOTSTRAP_BROKERS, BootstrapBrokersField(field))

    def zookeeper_connection_string(
        self, field: ZookeeperField = ZookeeperField.PLAINTEXT
    ) -> LookupHandle:
        return self.lookups.register(DESCRIBE_CLUSTER, ZookeeperField(field))

    def resolve_lookups(self) -> None:
        self.lookups.resolve()


class KafkaCluster(pulumi.ComponentResource, _KafkaClusterLookups):
    """Provisioned MSK cluster.

    Configuration problems are reported as errors on this component without
    stopping the program, so a single preview shows all of them.
    """

    def __init__(
        self,
        name: str,
        config: KafkaClusterConfig,
        vpc_id: pulumi.Input[str],
        subnet_ids: pulumi.Input[Sequence[str]],
        security_group_ids: Optional[Sequence[pulumi.Input[str]]] = None,
        cluster_name: pulumi.Input[str] | None = None,
        provider: aws.Provider | None = None,
        tags: dict[str, str] | None = None,
        opts: pulumi.ResourceOptions | None = None,
    ):
        super().__init__("msk-infra:kafka:KafkaCluster", name, None, opts)
        self._tags = tags or {}
        self._name = name
        self._provider = provider
        self._config = config
        child_opts = pulumi.ResourceOptions(parent=self, provider=provider)
        invoke_opts = pulumi.InvokeOptions(parent=self, provider=provider)

        if cluster_name is None:
            cluster_name = config.cluster_name or f"{name}-msk"
        self.cluster_name = cluster_name

        subnet_count = None if isinstance(subnet_ids, pulumi.Output) else len(subnet_ids)
        self.diagnostics: list[ValidationErrorDetail] = validate_cluster_config(
            config, subnet_count, self.cluster_name
        )
        for error in self.diagnostics:
            pulumi.log.error(f"{error.field}: {error.message}", resource=self)

        if security_group_ids:
            self.security_group = None
            security_group_ids = list(security_group_ids)
        else:
            self.security_group = self._create_security_group(vpc_id, child_opts)
            security_group_ids = [self.security_group.id]

        self._connections = Connections(
            name,
            security_group_ids,
            default_client_port(config),
            child_opts,
        )

        cluster_args = build_cluster_args(
            self.cluster_name, config, subnet_ids, security_group_ids, self._tags
        )
        logger.debug("Creating MSK cluster %s with %s", name, sorted(cluster_args))

        self.cluster = aws.msk.Cluster(
            f"{name}-msk-cluster",
            **cluster_args,
            opts=pulumi.ResourceOptions(
                parent=self,
                provider=provider,
                retain_on_delete=config.removal_policy == RemovalPolicy.RETAIN,
            ),
        )

        self.secrets_key = None
        if config.client_authentication and config.client_authentication.scram_enabled:
            self.secrets_key = aws.kms.Key(
                f"{name}-msk-scram-key",
                description=f"KMS key for MSK SCRAM user secrets - {name}",
                enable_key_rotation=True,
                tags={"Name": f"{name}-msk-scram-key", **self._tags},
                opts=child_opts,
            )

        self.cluster_arn = self.cluster.arn
        self.lookups = self._create_lookups(self.cluster.arn, self.cluster.cluster_name, invoke_opts)

        self.register_outputs(
            {
                "cluster_arn": self.cluster_arn,
                "security_group_ids": security_group_ids,
            }
        )

    @property
    def connections(self) -> Connections:
        return self._connections

    def _create_security_group(
        self,
        vpc_id: pulumi.Input[str],
        opts: pulumi.ResourceOptions,
    ) -> aws.ec2.SecurityGroup:
        sg = aws.ec2.SecurityGroup(
            f"{self._name}-msk-sg",
            vpc_id=vpc_id,
            description="MSK cluster security group",
            egress=[
                aws.ec2.SecurityGroupEgressArgs(
                    protocol="-1",
                    from_port=0,
                    to_port=0,
                    cidr_blocks=["0.0.0.0/0"],
                    description="Allow all outbound",
                ),
            ],
            tags={"Name": f"{self._name}-msk-sg", **self._tags},
            opts=opts,
        )

        aws.ec2.SecurityGroupRule(
            f"{self._name}-msk-sg-self-ingress",
            type="ingress",
            security_group_id=sg.id,
            source_security_group_id=sg.id,
            protocol="-1",
            from_port=0,
            to_port=0,
            description="Allow broker to broker traffic",
            opts=opts,
        )

        return sg

    def add_user(
        self,
        username: str,
        password: pulumi.Input[str] | None = None,
    ) -> aws.secretsmanager.Secret:
        """Create a SASL/SCRAM user secret and associate it with the cluster.

        A random password is generated when none is given. The password is
        only set on creation; later runs keep the stored value.
        """
        if self.secrets_key is None:
            raise ValueError(
                f"Cannot add user '{username}': SASL/SCRAM is not enabled on {self._name}"
            )

        child_opts = pulumi.ResourceOptions(parent=self, provider=self._provider)

        if password is None:
            generated = aws.secretsmanager.get_random_password_output(
                password_length=32,
                exclude_punctuation=True,
                opts=pulumi.InvokeOptions(parent=self, provider=self._provider),
            )
            password = generated.random_password

        secret = aws.secretsmanager.Secret(
            f"{self._name}-msk-user-{username}",
            name=pulumi.Output.concat(SCRAM_SECRET_PREFIX, self.cluster_name, "_", username),
            kms_key_id=self.secrets_key.arn,
            tags={"Name": f"{self._name}-msk-user-{username}", **self._tags},
            opts=child_opts,
        )

        secret_version = aws.secretsmanager.SecretVersion(
            f"{self._name}-msk-user-{username}-version",
            secret_id=secret.id,
            secret_string=pulumi.Output.secret(password).apply(
                lambda p: json.dumps({"username": username, "password": p})
            ),
            opts=pulumi.ResourceOptions(
                parent=self,
                provider=self._provider,
                ignore_changes=["secret_string"],
            ),
        )

        aws.msk.SingleScramSecretAssociation(
            f"{self._name}-msk-user-{username}-association",
            cluster_arn=self.cluster.arn,
            secret_arn=secret.arn,
            opts=pulumi.ResourceOptions(
                parent=self,
                provider=self._provider,
                depends_on=[secret_version],
            ),
        )

        return secret

    @staticmethod
    def from_cluster_arn(
        name: str,
        cluster_arn: pulumi.Input[str],
        provider: aws.Provider | None = None,
    ) -> "ImportedKafkaCluster":
        """Reference a cluster managed outside this program."""
        return ImportedKafkaCluster(name, cluster_arn, provider)


class ImportedKafkaCluster(_KafkaClusterLookups):
    """A cluster that exists outside this program, known by its ARN."""

    def __init__(
        self,
        name: str,
        cluster_arn: pulumi.Input[str],
        provider: aws.Provider | None = None,
    ):
        self._name = name
        self.cluster_arn = cluster_arn
        self.cluster_name = _cluster_name_from_arn(cluster_arn)
        invoke_opts = pulumi.InvokeOptions(provider=provider) if provider else None
        self.lookups = self._create_lookups(cluster_arn, self.cluster_name, invoke_opts)

    @property
    def connections(self) -> Connections:
        raise ConnectionsUnavailableError(
            f"Cluster '{self._name}' is imported; its security groups are not managed here"
        )
