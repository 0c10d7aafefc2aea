"""
Pytest configuration and fixtures for the MSK infrastructure tests.

Pulumi mocks are installed before any component is imported so that
resources created in tests are registered against an in-memory engine.
"""

import pulumi
import pytest


class KafkaMocks(pulumi.runtime.Mocks):
    """Echo resource inputs back as state and answer the MSK lookups."""

    def new_resource(self, args: pulumi.runtime.MockResourceArgs):
        outputs = dict(args.inputs)
        if args.typ == "aws:msk/cluster:Cluster":
            cluster_name = args.inputs.get("clusterName", args.name)
            outputs["arn"] = (
                f"arn:aws:kafka:us-east-1:123456789012:cluster/{cluster_name}/0000-aaaa"
            )
        if args.typ in ("aws:secretsmanager/secret:Secret", "aws:kms/key:Key", "aws:iam/role:Role"):
            outputs["arn"] = f"arn:aws:mock:::{args.name}"
        return [f"{args.name}_id", outputs]

    def call(self, args: pulumi.runtime.MockCallArgs):
        if args.token == "aws:msk/getBootstrapBrokers:getBootstrapBrokers":
            return {
                "clusterArn": args.args.get("clusterArn"),
                "bootstrapBrokersTls": "b-1.mock:9094,b-2.mock:9094",
            }
        if args.token == "aws:msk/getCluster:getCluster":
            return {
                "clusterName": args.args.get("clusterName"),
                "zookeeperConnectString": "z-1.mock:2181",
            }
        if args.token == "aws:secretsmanager/getRandomPassword:getRandomPassword":
            return {"randomPassword": "mock-password"}
        if args.token == "aws:index/getCallerIdentity:getCallerIdentity":
            return {
                "accountId": "123456789012",
                "arn": "arn:aws:iam::123456789012:user/deployer",
                "id": "123456789012",
                "userId": "AIDAMOCK",
            }
        if args.token == "aws:index/getPartition:getPartition":
            return {
                "id": "aws",
                "partition": "aws",
                "dnsSuffix": "amazonaws.com",
                "reverseDnsPrefix": "com.amazonaws",
            }
        return {}


pulumi.runtime.set_mocks(KafkaMocks(), project="msk-infra", stack="test", preview=False)


@pytest.fixture
def subnet_ids() -> list[str]:
    """Two client subnets in distinct AZs."""
    return ["subnet-aaaa", "subnet-bbbb"]
