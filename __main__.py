import pulumi

from infra.components.iam import KafkaClientRole
from infra.components.kafka import KafkaCluster
from infra.config import load_program_config
from infra.lookups import BootstrapBrokersField, ZookeeperField
from infra.models import ClientBrokerEncryption
from infra.providers import create_aws_provider

config = load_program_config()

aws_provider = create_aws_provider(config)


kafka = KafkaCluster(
    name=config.name,
    config=config.cluster,
    vpc_id=config.vpc_id,
    subnet_ids=config.subnet_ids,
    security_group_ids=config.security_group_ids or None,
    provider=aws_provider,
    tags=config.tags,
)

if config.client_security_group_id:
    kafka.connections.allow_from("clients", config.client_security_group_id)

for username in config.scram_users:
    kafka.add_user(username)


client_role = None
if config.client:
    client_role = KafkaClientRole(
        name=config.name,
        cluster_arn=kafka.cluster_arn,
        topics=config.client.topics,
        consumer_groups=config.client.consumer_groups,
        allow_write=config.client.allow_write,
        service=config.client.service,
        provider=aws_provider,
        tags=config.tags,
        opts=pulumi.ResourceOptions(depends_on=[kafka]),
    )


# =============================================================================
# Connection strings (single lookup per API call)
# =============================================================================

auth = config.cluster.client_authentication
if auth is not None and auth.iam_enabled:
    brokers_field = BootstrapBrokersField.SASL_IAM
elif auth is not None and auth.scram_enabled:
    brokers_field = BootstrapBrokersField.SASL_SCRAM
elif config.cluster.encryption_in_transit.client_broker == ClientBrokerEncryption.PLAINTEXT:
    brokers_field = BootstrapBrokersField.PLAINTEXT
else:
    brokers_field = BootstrapBrokersField.TLS

bootstrap_brokers = kafka.bootstrap_brokers(brokers_field)
zookeeper_connect = kafka.zookeeper_connection_string(ZookeeperField.PLAINTEXT)

kafka.resolve_lookups()


pulumi.export("msk_cluster_arn", kafka.cluster_arn)
pulumi.export("msk_cluster_name", kafka.cluster_name)
pulumi.export("msk_bootstrap_brokers", bootstrap_brokers.value)
pulumi.export("msk_zookeeper_connect_string", zookeeper_connect.value)
pulumi.export("msk_validation_errors", [f"{e.field}: {e.message}" for e in kafka.diagnostics])

if client_role:
    pulumi.export("kafka_client_role_arn", client_role.role_arn)

pulumi.export(
    "config_summary",
    {
        "name": config.name,
        "environment": config.environment,
        "aws_region": config.aws_region,
        "kafka_version": config.cluster.kafka_version,
        "instance_type": config.cluster.instance_type,
        "client_broker": config.cluster.encryption_in_transit.client_broker.value,
        "monitoring_level": config.cluster.monitoring.level.value,
        "removal_policy": config.cluster.removal_policy.value,
    },
)
