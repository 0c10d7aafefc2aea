from infra.components.iam import KafkaClientRole
from infra.components.kafka import ImportedKafkaCluster, KafkaCluster

__all__ = ["KafkaCluster", "ImportedKafkaCluster", "KafkaClientRole"]
