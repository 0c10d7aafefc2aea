"""
Unit tests for the policy statement and document builders.

Tests cover:
- Field normalization (omitted, scalar, list)
- Principal merging and the AWS wildcard shorthand
- Condition merging
- Document rendering with and without a base document
"""

import json

import pulumi

from infra.iam import (
    POLICY_VERSION,
    AccountRootPrincipal,
    AnyPrincipal,
    Effect,
    FederatedPrincipal,
    PolicyDocument,
    PolicyStatement,
    ServicePrincipal,
)


# =============================================================================
# Statement Normalization
# =============================================================================


class TestStatementNormalization:
    """Single values are unwrapped, empty collections disappear."""

    def test_single_action_is_scalar(self) -> None:
        stmt = PolicyStatement().add_action("kafka:DescribeCluster")
        assert stmt.to_json()["Action"] == "kafka:DescribeCluster"

    def test_two_actions_keep_order(self) -> None:
        stmt = PolicyStatement().add_actions("kafka:ListClusters", "kafka:DescribeCluster")
        assert stmt.to_json()["Action"] == ["kafka:ListClusters", "kafka:DescribeCluster"]

    def test_empty_fields_are_omitted(self) -> None:
        """A bare statement only carries its effect."""
        assert PolicyStatement().to_json() == {"Effect": "Allow"}

    def test_empty_add_actions_produces_no_action(self) -> None:
        stmt = PolicyStatement().add_actions().add_resources()
        rendered = stmt.to_json()
        assert "Action" not in rendered
        assert "Resource" not in rendered

    def test_single_resource_is_scalar(self) -> None:
        stmt = PolicyStatement().add_all_resources()
        assert stmt.to_json()["Resource"] == "*"
        assert stmt.has_resource

    def test_duplicates_are_dropped_on_render(self) -> None:
        stmt = PolicyStatement().add_actions("s3:GetObject", "s3:PutObject", "s3:GetObject")
        assert stmt.to_json()["Action"] == ["s3:GetObject", "s3:PutObject"]

    def test_key_order(self) -> None:
        stmt = (
            PolicyStatement()
            .add_condition("Bool", {"aws:SecureTransport": "true"})
            .add_resource("*")
            .add_action("s3:GetObject")
            .add_service_principal("kafka.amazonaws.com")
            .describe("Read")
        )
        assert list(stmt.to_json()) == ["Sid", "Effect", "Principal", "Action", "Resource", "Condition"]

    def test_effect(self) -> None:
        assert PolicyStatement(Effect.DENY).to_json()["Effect"] == "Deny"
        assert PolicyStatement().deny().allow().to_json()["Effect"] == "Allow"

    def test_sid(self) -> None:
        assert PolicyStatement().describe("ClusterAccess").to_json()["Sid"] == "ClusterAccess"


# =============================================================================
# Principals
# =============================================================================


class TestStatementPrincipals:
    """Principal fragments are merged per principal type."""

    def test_no_principal(self) -> None:
        stmt = PolicyStatement()
        assert not stmt.has_principal
        assert "Principal" not in stmt.to_json()

    def test_single_service_principal(self) -> None:
        stmt = PolicyStatement().add_service_principal("ec2.amazonaws.com")
        assert stmt.has_principal
        assert stmt.to_json()["Principal"] == {"Service": "ec2.amazonaws.com"}

    def test_principals_of_same_type_are_appended(self) -> None:
        stmt = (
            PolicyStatement()
            .add_aws_principal("arn:aws:iam::111111111111:role/a")
            .add_arn_principal("arn:aws:iam::111111111111:role/b")
        )
        assert stmt.to_json()["Principal"] == {
            "AWS": ["arn:aws:iam::111111111111:role/a", "arn:aws:iam::111111111111:role/b"]
        }

    def test_mixed_principal_types(self) -> None:
        stmt = (
            PolicyStatement()
            .add_service_principal("lambda.amazonaws.com")
            .add_aws_account_principal("123456789012")
        )
        assert stmt.to_json()["Principal"] == {
            "Service": "lambda.amazonaws.com",
            "AWS": "arn:aws:iam::123456789012:root",
        }

    def test_any_principal_collapses_to_wildcard(self) -> None:
        stmt = PolicyStatement().add_any_principal()
        assert stmt.to_json()["Principal"] == "*"

    def test_wildcard_with_other_type_is_not_collapsed(self) -> None:
        stmt = PolicyStatement().add_principal(AnyPrincipal()).add_principal(ServicePrincipal("sns.amazonaws.com"))
        assert stmt.to_json()["Principal"] == {"AWS": "*", "Service": "sns.amazonaws.com"}

    def test_wildcard_only_collapses_for_aws(self) -> None:
        stmt = PolicyStatement().add_service_principal("*")
        assert stmt.to_json()["Principal"] == {"Service": "*"}

    def test_canonical_user(self) -> None:
        stmt = PolicyStatement().add_canonical_user_principal("abc123")
        assert stmt.to_json()["Principal"] == {"CanonicalUser": "abc123"}

    def test_federated_principal_brings_conditions(self) -> None:
        stmt = PolicyStatement().add_principal(
            FederatedPrincipal(
                "arn:aws:iam::123456789012:oidc-provider/oidc.example.com",
                {"StringEquals": {"oidc.example.com:aud": "sts.amazonaws.com"}},
            )
        )
        rendered = stmt.to_json()
        assert rendered["Principal"] == {
            "Federated": "arn:aws:iam::123456789012:oidc-provider/oidc.example.com"
        }
        assert rendered["Condition"] == {"StringEquals": {"oidc.example.com:aud": "sts.amazonaws.com"}}


# =============================================================================
# Conditions
# =============================================================================


class TestStatementConditions:
    """Condition values are appended per operator and key."""

    def test_values_for_same_key_are_appended(self) -> None:
        stmt = (
            PolicyStatement()
            .add_condition("StringEquals", {"aws:SourceAccount": "111111111111"})
            .add_condition("StringEquals", {"aws:SourceAccount": "222222222222"})
        )
        assert stmt.to_json()["Condition"] == {
            "StringEquals": {"aws:SourceAccount": ["111111111111", "222222222222"]}
        }

    def test_list_payload_is_extended(self) -> None:
        stmt = PolicyStatement().add_conditions(
            {"ForAllValues:StringEquals": {"aws:TagKeys": ["Name", "Team"]}}
        )
        assert stmt.to_json()["Condition"] == {
            "ForAllValues:StringEquals": {"aws:TagKeys": ["Name", "Team"]}
        }

    def test_limit_to_account(self) -> None:
        stmt = PolicyStatement().limit_to_account("123456789012")
        assert stmt.to_json()["Condition"] == {"StringEquals": {"sts:ExternalId": "123456789012"}}

    def test_empty_condition_payload_is_omitted(self) -> None:
        stmt = PolicyStatement().add_condition("StringEquals", {})
        assert "Condition" not in stmt.to_json()


# =============================================================================
# Documents
# =============================================================================


class TestPolicyDocument:
    """Document rendering."""

    def test_empty_document_renders_nothing(self) -> None:
        doc = PolicyDocument()
        assert doc.is_empty
        assert doc.resolve() is None
        assert doc.to_json() is None

    def test_statements_in_insertion_order(self) -> None:
        doc = (
            PolicyDocument()
            .add_statement(PolicyStatement().describe("First").add_action("a:A"))
            .add_statement(PolicyStatement().describe("Second").add_action("b:B"))
        )
        rendered = doc.resolve()
        assert doc.statement_count == 2
        assert rendered["Version"] == POLICY_VERSION
        assert [s["Sid"] for s in rendered["Statement"]] == ["First", "Second"]

    def test_duplicate_statements_are_kept(self) -> None:
        stmt = PolicyStatement().add_action("a:A")
        doc = PolicyDocument().add_statement(stmt).add_statement(stmt)
        assert len(doc.resolve()["Statement"]) == 2

    def test_base_document_without_added_statements(self) -> None:
        existing = {"Effect": "Allow", "Action": "s3:GetObject", "Resource": "*"}
        doc = PolicyDocument({"Statement": [existing]})
        assert doc.resolve() == {"Statement": [existing], "Version": POLICY_VERSION}

    def test_base_document_keeps_its_version(self) -> None:
        doc = PolicyDocument({"Version": "2008-10-17"})
        doc.add_statement(PolicyStatement().add_action("a:A"))
        rendered = doc.resolve()
        assert rendered["Version"] == "2008-10-17"
        assert rendered["Statement"] == [{"Effect": "Allow", "Action": "a:A"}]

    def test_empty_base_document_renders(self) -> None:
        assert PolicyDocument({}).resolve() == {"Version": POLICY_VERSION, "Statement": []}

    def test_resolve_twice_is_stable(self) -> None:
        base = {"Statement": [{"Effect": "Deny", "Action": "*", "Resource": "*"}]}
        doc = PolicyDocument(base).add_statement(PolicyStatement().add_action("a:A"))
        first = doc.resolve()
        second = doc.resolve()
        assert first == second
        assert len(second["Statement"]) == 2
        assert len(base["Statement"]) == 1


class TestPolicyDocumentJson:
    """JSON rendering waits for deferred values."""

    @pulumi.runtime.test
    def test_to_json_with_deferred_resource(self):
        arn = pulumi.Output.from_input("arn:aws:kafka:us-east-1:123456789012:cluster/demo/1")
        doc = PolicyDocument().add_statement(
            PolicyStatement().add_action("kafka-cluster:Connect").add_resource(arn)
        )

        def check(text):
            assert json.loads(text) == {
                "Version": POLICY_VERSION,
                "Statement": [
                    {
                        "Effect": "Allow",
                        "Action": "kafka-cluster:Connect",
                        "Resource": "arn:aws:kafka:us-east-1:123456789012:cluster/demo/1",
                    }
                ],
            }

        return doc.to_json().apply(check)

    @pulumi.runtime.test
    def test_equal_deferred_values_are_merged(self):
        first = pulumi.Output.from_input("arn:aws:s3:::logs")
        second = pulumi.Output.from_input("arn:aws:s3:::logs")
        doc = PolicyDocument().add_statement(
            PolicyStatement()
            .add_action("s3:GetObject")
            .add_resources(first, second)
            .add_arn_principal(pulumi.Output.from_input("arn:aws:iam::123456789012:role/a"))
            .add_arn_principal(pulumi.Output.from_input("arn:aws:iam::123456789012:role/a"))
        )

        def check(text):
            statement = json.loads(text)["Statement"][0]
            assert statement["Resource"] == "arn:aws:s3:::logs"
            assert statement["Principal"] == {"AWS": "arn:aws:iam::123456789012:role/a"}

        return doc.to_json().apply(check)

    @pulumi.runtime.test
    def test_account_root_principal(self):
        doc = PolicyDocument().add_statement(
            PolicyStatement().add_action("sts:AssumeRole").add_account_root_principal()
        )

        def check(text):
            statement = json.loads(text)["Statement"][0]
            assert statement["Principal"] == {"AWS": "arn:aws:iam::123456789012:root"}

        return doc.to_json().apply(check)

    @pulumi.runtime.test
    def test_account_root_principal_class(self):
        principal = AccountRootPrincipal()

        def check(arn):
            assert arn == "arn:aws:iam::123456789012:root"

        return principal.arn.apply(check)
