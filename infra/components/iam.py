import json

import pulumi
import pulumi_aws as aws

from infra.iam import FederatedPrincipal, PolicyDocument, PolicyStatement, ServicePrincipal


def _kafka_resource_arn(cluster_arn: pulumi.Input[str], kind: str, name: str) -> pulumi.Output[str]:
    """Topic or group ARN under a cluster.

    arn:aws:kafka:<region>:<account>:cluster/<name>/<uuid>
    -> arn:aws:kafka:<region>:<account>:<kind>/<name>/<uuid>/<resource>
    """
    return pulumi.Output.from_input(cluster_arn).apply(
        lambda arn: f"{arn.replace(':cluster/', f':{kind}/', 1)}/{name}"
    )


def build_client_access_policy(
    cluster_arn: pulumi.Input[str],
    topics: list[str],
    consumer_groups: list[str],
    allow_write: bool = False,
) -> PolicyDocument:
    """IAM access control policy for a Kafka client of one cluster."""
    document = PolicyDocument()

    document.add_statement(
        PolicyStatement()
        .describe("ClusterAccess")
        .add_actions("kafka-cluster:Connect", "kafka-cluster:DescribeCluster")
        .add_resource(cluster_arn)
    )

    topic_actions = ["kafka-cluster:DescribeTopic", "kafka-cluster:ReadData"]
    if allow_write:
        topic_actions += ["kafka-cluster:WriteData", "kafka-cluster:CreateTopic"]

    if topics:
        document.add_statement(
            PolicyStatement()
            .describe("TopicAccess")
            .add_actions(*topic_actions)
            .add_resources(*[_kafka_resource_arn(cluster_arn, "topic", t) for t in topics])
        )

    if consumer_groups:
        document.add_statement(
            PolicyStatement()
            .describe("GroupAccess")
            .add_actions("kafka-cluster:AlterGroup", "kafka-cluster:DescribeGroup")
            .add_resources(*[_kafka_resource_arn(cluster_arn, "group", g) for g in consumer_groups])
        )

    return document


def build_service_assume_role_policy(service: str) -> PolicyDocument:
    return PolicyDocument().add_statement(
        PolicyStatement().add_principal(ServicePrincipal(service)).add_action("sts:AssumeRole")
    )


def build_irsa_assume_role_policy(
    oidc_provider_arn: str,
    oidc_provider_url: str,
    namespace: str,
    service_account: str,
) -> PolicyDocument:
    issuer = oidc_provider_url.replace("https://", "")
    principal = FederatedPrincipal(
        oidc_provider_arn,
        {
            "StringEquals": {
                f"{issuer}:aud": "sts.amazonaws.com",
                f"{issuer}:sub": f"system:serviceaccount:{namespace}:{service_account}",
            }
        },
    )
    return PolicyDocument().add_statement(
        PolicyStatement().add_principal(principal).add_action("sts:AssumeRoleWithWebIdentity")
    )


class KafkaClientRole(pulumi.ComponentResource):
    """IAM role for applications that talk to the cluster with SASL/IAM.

    The role is assumed either by an AWS service (``service``) or by a
    Kubernetes service account through IRSA (``oidc_provider_arn``,
    ``oidc_provider_url`` and ``service_account``).

    ``topics`` and ``consumer_groups`` default to every topic and group of the
    cluster. An empty list grants none.
    """

    def __init__(
        self,
        name: str,
        cluster_arn: pulumi.Input[str],
        topics: list[str] | None = None,
        consumer_groups: list[str] | None = None,
        allow_write: bool = False,
        service: str | None = None,
        oidc_provider_arn: pulumi.Input[str] | None = None,
        oidc_provider_url: pulumi.Input[str] | None = None,
        service_account: tuple[str, str] | None = None,
        provider: aws.Provider | None = None,
        tags: dict[str, str] | None = None,
        opts: pulumi.ResourceOptions | None = None,
    ):
        super().__init__("msk-infra:kafka:KafkaClientRole", name, None, opts)

        child_opts = pulumi.ResourceOptions(parent=self, provider=provider)
        self._tags = tags or {}

        if oidc_provider_arn is not None and oidc_provider_url is not None and service_account:
            namespace, account = service_account
            assume_role_policy = pulumi.Output.all(oidc_provider_arn, oidc_provider_url).apply(
                lambda args: json.dumps(
                    build_irsa_assume_role_policy(args[0], args[1], namespace, account).resolve()
                )
            )
        elif service:
            assume_role_policy = build_service_assume_role_policy(service).to_json()
        else:
            raise ValueError(
                "KafkaClientRole needs either a service principal or an OIDC provider and service account"
            )

        self.role = aws.iam.Role(
            f"{name}-kafka-client-role",
            assume_role_policy=assume_role_policy,
            tags={"Name": f"{name}-kafka-client-role", **self._tags},
            opts=child_opts,
        )

        self.policy_document = build_client_access_policy(
            cluster_arn,
            topics if topics is not None else ["*"],
            consumer_groups if consumer_groups is not None else ["*"],
            allow_write,
        )

        aws.iam.RolePolicy(
            f"{name}-kafka-client-policy",
            role=self.role.id,
            policy=self.policy_document.to_json(),
            opts=child_opts,
        )

        self.role_arn = self.role.arn

        self.register_outputs(
            {
                "role_arn": self.role_arn,
            }
        )
