"""Principal types that can be attached to a policy statement."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import pulumi
import pulumi_aws as aws


class PrincipalType(str, Enum):
    """Principal block tag as it appears in a policy statement."""

    AWS = "AWS"
    SERVICE = "Service"
    FEDERATED = "Federated"
    CANONICAL_USER = "CanonicalUser"


@dataclass
class PrincipalPolicyFragment:
    """What a principal contributes to a statement.

    ``principals`` maps a principal tag to the values for that tag and
    ``conditions`` maps a condition operator to its key/value payload.
    """

    principals: dict[PrincipalType, list[Any]]
    conditions: dict[str, dict[str, Any]] = field(default_factory=dict)


def merge_principal(
    target: dict[PrincipalType, list[Any]],
    source: dict[PrincipalType, list[Any]],
) -> dict[PrincipalType, list[Any]]:
    """Append the values of ``source`` into ``target``, tag by tag."""
    for principal_type, values in source.items():
        target.setdefault(PrincipalType(principal_type), []).extend(values)
    return target


def _root_arn(partition: pulumi.Input[str], account_id: pulumi.Input[str]) -> pulumi.Input[str]:
    if isinstance(partition, pulumi.Output) or isinstance(account_id, pulumi.Output):
        return pulumi.Output.concat("arn:", partition, ":iam::", account_id, ":root")
    return f"arn:{partition}:iam::{account_id}:root"


class Principal:
    """Base class for principals."""

    @property
    def policy_fragment(self) -> PrincipalPolicyFragment:
        raise NotImplementedError


class ArnPrincipal(Principal):
    """An IAM entity (user, role, account root) identified by ARN."""

    def __init__(self, arn: pulumi.Input[str]):
        self.arn = arn

    @property
    def policy_fragment(self) -> PrincipalPolicyFragment:
        return PrincipalPolicyFragment({PrincipalType.AWS: [self.arn]})


class AccountPrincipal(ArnPrincipal):
    """The root user of an AWS account."""

    def __init__(self, account_id: pulumi.Input[str], partition: pulumi.Input[str] = "aws"):
        self.account_id = account_id
        super().__init__(_root_arn(partition, account_id))


class AccountRootPrincipal(AccountPrincipal):
    """The root user of the account the program deploys into."""

    def __init__(self, opts: pulumi.InvokeOptions | None = None):
        caller = aws.get_caller_identity_output(opts=opts)
        partition = aws.get_partition_output(opts=opts)
        super().__init__(caller.account_id, partition.partition)


class ServicePrincipal(Principal):
    """An AWS service, e.g. ``kafka.amazonaws.com``."""

    def __init__(self, service: str):
        self.service = service

    @property
    def policy_fragment(self) -> PrincipalPolicyFragment:
        return PrincipalPolicyFragment({PrincipalType.SERVICE: [self.service]})


class FederatedPrincipal(Principal):
    """A federated identity provider, with the conditions it must be assumed under."""

    def __init__(self, federated: pulumi.Input[str], conditions: dict[str, dict[str, Any]] | None = None):
        self.federated = federated
        self.conditions = conditions or {}

    @property
    def policy_fragment(self) -> PrincipalPolicyFragment:
        return PrincipalPolicyFragment(
            {PrincipalType.FEDERATED: [self.federated]},
            dict(self.conditions),
        )


class CanonicalUserPrincipal(Principal):
    """An S3 canonical user id."""

    def __init__(self, canonical_user_id: str):
        self.canonical_user_id = canonical_user_id

    @property
    def policy_fragment(self) -> PrincipalPolicyFragment:
        return PrincipalPolicyFragment({PrincipalType.CANONICAL_USER: [self.canonical_user_id]})


class AnyPrincipal(ArnPrincipal):
    """Anyone. Rendered as ``"Principal": "*"``."""

    def __init__(self):
        super().__init__("*")
