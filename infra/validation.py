import re
from typing import Any, Optional

import pulumi

from infra.models import (
    ClientBrokerEncryption,
    KafkaClusterConfig,
    ValidationErrorDetail,
)

MIN_SUBNETS = 2
MAX_CLUSTER_NAME_LENGTH = 64
MIN_VOLUME_SIZE = 1
MAX_VOLUME_SIZE = 16384

_CLUSTER_NAME_PATTERN = re.compile(r"^[a-zA-Z0-9-]+$")


class ConfigValidationError(Exception):
    """Exception raised when config validation fails."""

    def __init__(self, errors: list[ValidationErrorDetail]):
        self.errors = errors
        messages = [f"{e.field}: {e.message}" for e in errors]
        super().__init__(f"Configuration validation failed: {'; '.join(messages)}")


def is_deferred(value: Any) -> bool:
    """True when the value is only known once the deployment runs."""
    return isinstance(value, pulumi.Output)


def validate_subnet_count(subnet_count: Optional[int]) -> list[ValidationErrorDetail]:
    """Brokers must be spread over at least two subnets."""
    if subnet_count is None or subnet_count >= MIN_SUBNETS:
        return []

    return [
        ValidationErrorDetail(
            field="subnet_ids",
            message=f"Cluster requires at least {MIN_SUBNETS} subnets, got {subnet_count}",
            value=str(subnet_count),
        )
    ]


def validate_cluster_name(cluster_name: Optional[pulumi.Input[str]]) -> list[ValidationErrorDetail]:
    """Validate a cluster name that is already known. Deferred names are skipped."""
    errors: list[ValidationErrorDetail] = []

    if cluster_name is None or is_deferred(cluster_name):
        return errors

    if len(cluster_name) > MAX_CLUSTER_NAME_LENGTH:
        errors.append(
            ValidationErrorDetail(
                field="cluster_name",
                message=(
                    f"Cluster name must be at most {MAX_CLUSTER_NAME_LENGTH} characters, "
                    f"got {len(cluster_name)}"
                ),
                value=cluster_name,
            )
        )

    if not _CLUSTER_NAME_PATTERN.match(cluster_name):
        errors.append(
            ValidationErrorDetail(
                field="cluster_name",
                message="Cluster name must only contain alphanumeric characters and hyphens",
                value=cluster_name,
            )
        )

    return errors


def validate_encryption_and_authentication(config: KafkaClusterConfig) -> list[ValidationErrorDetail]:
    """Client authentication needs TLS between clients and brokers."""
    errors: list[ValidationErrorDetail] = []

    client_broker = config.encryption_in_transit.client_broker
    auth = config.client_authentication

    if auth is None:
        return errors

    if client_broker == ClientBrokerEncryption.PLAINTEXT:
        errors.append(
            ValidationErrorDetail(
                field="encryption_in_transit.client_broker",
                message=(
                    "To enable client authentication, you must enable TLS-encrypted "
                    "traffic between clients and brokers"
                ),
                value=client_broker.value,
            )
        )
    elif client_broker == ClientBrokerEncryption.TLS_PLAINTEXT and auth.scram_enabled:
        errors.append(
            ValidationErrorDetail(
                field="encryption_in_transit.client_broker",
                message=(
                    "To enable SASL/SCRAM authentication, you must only allow "
                    "TLS-encrypted traffic between clients and brokers"
                ),
                value=client_broker.value,
            )
        )

    return errors


def validate_volume_size(config: KafkaClusterConfig) -> list[ValidationErrorDetail]:
    volume_size = config.ebs_storage.volume_size
    if MIN_VOLUME_SIZE <= volume_size <= MAX_VOLUME_SIZE:
        return []

    return [
        ValidationErrorDetail(
            field="ebs_storage.volume_size",
            message=f"EBS volume size should be in the range {MIN_VOLUME_SIZE}-{MAX_VOLUME_SIZE}",
            value=str(volume_size),
        )
    ]


def validate_sasl_mechanisms(config: KafkaClusterConfig) -> list[ValidationErrorDetail]:
    auth = config.client_authentication
    if auth is None or not (auth.scram_enabled and auth.iam_enabled):
        return []

    return [
        ValidationErrorDetail(
            field="client_authentication.sasl",
            message="Only one SASL client authentication method (SCRAM or IAM) can be enabled",
        )
    ]


def validate_cluster_config(
    config: KafkaClusterConfig,
    subnet_count: Optional[int],
    cluster_name: Optional[pulumi.Input[str]] = None,
) -> list[ValidationErrorDetail]:
    """Run every cluster check and return all problems found.

    ``subnet_count`` is ``None`` when the subnets are only known at deploy
    time. ``cluster_name`` defaults to the configured name.
    """
    if cluster_name is None:
        cluster_name = config.cluster_name

    errors: list[ValidationErrorDetail] = []

    errors.extend(validate_subnet_count(subnet_count))
    errors.extend(validate_cluster_name(cluster_name))
    errors.extend(validate_encryption_and_authentication(config))
    errors.extend(validate_volume_size(config))
    errors.extend(validate_sasl_mechanisms(config))

    return errors


def validate_or_raise(
    config: KafkaClusterConfig,
    subnet_count: Optional[int],
    cluster_name: Optional[pulumi.Input[str]] = None,
) -> None:
    """Validate the configuration.

    Raises ConfigValidationError if validation fails.
    """
    errors = validate_cluster_config(config, subnet_count, cluster_name)
    if errors:
        raise ConfigValidationError(errors)
