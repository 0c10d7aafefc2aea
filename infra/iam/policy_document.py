"""IAM policy document and statement builders.

Statements are assembled with append-only mutators while components are
constructed and rendered once, when the document is handed to a resource.
Rendering normalizes every collection:

* an absent or empty collection is omitted,
* a single value is unwrapped to a scalar,
* two or more values are kept as a list in insertion order.

The builders never raise on malformed input. An empty action list simply
produces a statement without an ``Action`` key; IAM rejects it at deploy time.
"""

import json
import logging
from enum import Enum
from typing import Any, Optional

import pulumi

from infra.iam.principals import (
    AccountPrincipal,
    AccountRootPrincipal,
    AnyPrincipal,
    ArnPrincipal,
    CanonicalUserPrincipal,
    FederatedPrincipal,
    Principal,
    PrincipalType,
    ServicePrincipal,
    merge_principal,
)

logger = logging.getLogger(__name__)

POLICY_VERSION = "2012-10-17"


class Effect(str, Enum):
    """Statement effect."""

    ALLOW = "Allow"
    DENY = "Deny"


def _dedupe(values: list[Any]) -> list[Any]:
    result: list[Any] = []
    for value in values:
        if value not in result:
            result.append(value)
    return result


def _norm(values: Any) -> Any:
    """Normalize one statement field. ``None`` means the field is omitted."""
    if values is None:
        return None

    if isinstance(values, (list, tuple)):
        values = _dedupe(list(values))
        if not values:
            return None
        if len(values) == 1:
            return values[0]
        return values

    if isinstance(values, dict) and not values:
        return None

    return values


def _norm_principal(principals: dict[PrincipalType, list[Any]]) -> Any:
    result: dict[str, Any] = {}
    for principal_type, values in principals.items():
        normalized = _norm(values)
        if normalized is not None:
            result[principal_type.value] = normalized

    if not result:
        return None

    # {"AWS": "*"} is written as the bare wildcard. Other tags keep their block.
    wildcard = result.get(PrincipalType.AWS.value)
    if len(result) == 1 and isinstance(wildcard, str) and wildcard == "*":
        return "*"

    return result


def _norm_condition(conditions: dict[str, dict[str, list[Any]]]) -> Optional[dict[str, Any]]:
    result: dict[str, Any] = {}
    for operator, payload in conditions.items():
        block = {}
        for key, values in payload.items():
            normalized = _norm(values)
            if normalized is not None:
                block[key] = normalized
        if block:
            result[operator] = block
    return result or None


def _dedupe_resolved(doc: dict[str, Any]) -> dict[str, Any]:
    """Drop values that only compare equal once deferred values are known.

    Before resolution ``pulumi.Output`` values compare by identity, so two
    Outputs for the same ARN both survive ``to_json`` on the statement.
    """
    statements = []
    for statement in doc.get("Statement") or []:
        if isinstance(statement, dict):
            statement = dict(statement)
            for key in ("Action", "Resource"):
                if isinstance(statement.get(key), list):
                    statement[key] = _norm(statement[key])
            if isinstance(statement.get("Principal"), dict):
                statement["Principal"] = {
                    tag: _norm(values) if isinstance(values, list) else values
                    for tag, values in statement["Principal"].items()
                }
        statements.append(statement)
    return {**doc, "Statement": statements}


class PolicyStatement:
    """A single Allow/Deny rule of a policy document."""

    def __init__(self, effect: Effect = Effect.ALLOW):
        self._actions: list[Any] = []
        self._resources: list[Any] = []
        self._principals: dict[PrincipalType, list[Any]] = {}
        self._conditions: dict[str, dict[str, list[Any]]] = {}
        self._effect = Effect(effect)
        self._sid: Optional[str] = None

    # Actions

    def add_action(self, action: str) -> "PolicyStatement":
        self._actions.append(action)
        return self

    def add_actions(self, *actions: str) -> "PolicyStatement":
        for action in actions:
            self.add_action(action)
        return self

    # Principals

    @property
    def has_principal(self) -> bool:
        return any(self._principals.values())

    def add_principal(self, principal: Principal) -> "PolicyStatement":
        fragment = principal.policy_fragment
        merge_principal(self._principals, fragment.principals)
        self.add_conditions(fragment.conditions)
        return self

    def add_aws_principal(self, arn: pulumi.Input[str]) -> "PolicyStatement":
        return self.add_principal(ArnPrincipal(arn))

    def add_arn_principal(self, arn: pulumi.Input[str]) -> "PolicyStatement":
        return self.add_aws_principal(arn)

    def add_aws_account_principal(self, account_id: pulumi.Input[str]) -> "PolicyStatement":
        return self.add_principal(AccountPrincipal(account_id))

    def add_service_principal(self, service: str) -> "PolicyStatement":
        return self.add_principal(ServicePrincipal(service))

    def add_federated_principal(
        self,
        federated: pulumi.Input[str],
        conditions: dict[str, dict[str, Any]],
    ) -> "PolicyStatement":
        return self.add_principal(FederatedPrincipal(federated, conditions))

    def add_account_root_principal(self) -> "PolicyStatement":
        return self.add_principal(AccountRootPrincipal())

    def add_canonical_user_principal(self, canonical_user_id: str) -> "PolicyStatement":
        return self.add_principal(CanonicalUserPrincipal(canonical_user_id))

    def add_any_principal(self) -> "PolicyStatement":
        return self.add_principal(AnyPrincipal())

    # Resources

    @property
    def has_resource(self) -> bool:
        return len(self._resources) > 0

    def add_resource(self, arn: pulumi.Input[str]) -> "PolicyStatement":
        self._resources.append(arn)
        return self

    def add_resources(self, *arns: pulumi.Input[str]) -> "PolicyStatement":
        for arn in arns:
            self.add_resource(arn)
        return self

    def add_all_resources(self) -> "PolicyStatement":
        """Adds a ``"*"`` resource to this statement."""
        return self.add_resource("*")

    # Conditions

    def add_condition(self, operator: str, payload: dict[str, Any]) -> "PolicyStatement":
        """Add condition values under ``operator``.

        Values for a condition key that is already present are appended, so
        ``StringEquals: {"aws:SourceAccount": "1"}`` added twice with different
        accounts renders as a two element list.
        """
        block = self._conditions.setdefault(operator, {})
        for key, value in payload.items():
            values = block.setdefault(key, [])
            if isinstance(value, (list, tuple)):
                values.extend(value)
            else:
                values.append(value)
        return self

    def add_conditions(self, conditions: dict[str, dict[str, Any]]) -> "PolicyStatement":
        for operator, payload in conditions.items():
            self.add_condition(operator, payload)
        return self

    def limit_to_account(self, account_id: pulumi.Input[str]) -> "PolicyStatement":
        return self.add_condition("StringEquals", {"sts:ExternalId": account_id})

    # Effect and id

    def allow(self) -> "PolicyStatement":
        self._effect = Effect.ALLOW
        return self

    def deny(self) -> "PolicyStatement":
        self._effect = Effect.DENY
        return self

    def describe(self, sid: str) -> "PolicyStatement":
        self._sid = sid
        return self

    # Serialization

    def to_json(self) -> dict[str, Any]:
        fields = {
            "Sid": _norm(self._sid),
            "Effect": self._effect.value,
            "Principal": _norm_principal(self._principals),
            "Action": _norm(self._actions),
            "Resource": _norm(self._resources),
            "Condition": _norm_condition(self._conditions),
        }
        return {key: value for key, value in fields.items() if value is not None}


class PolicyDocument:
    """An ordered collection of statements, optionally extending a base document."""

    def __init__(self, base_document: Optional[dict[str, Any]] = None):
        self._base_document = base_document
        self._statements: list[PolicyStatement] = []

    @property
    def is_empty(self) -> bool:
        return len(self._statements) == 0

    @property
    def statement_count(self) -> int:
        """Number of statements added so far. Handy for generating unique sids."""
        return len(self._statements)

    def add_statement(self, statement: PolicyStatement) -> "PolicyDocument":
        self._statements.append(statement)
        return self

    def resolve(self) -> Optional[dict[str, Any]]:
        """Render the document, or ``None`` if there is nothing to render."""
        if self.is_empty and self._base_document is None:
            return None

        doc = dict(self._base_document or {})
        doc["Version"] = doc.get("Version") or POLICY_VERSION
        doc["Statement"] = list(doc.get("Statement") or []) + [
            statement.to_json() for statement in self._statements
        ]
        logger.debug("Rendered policy document with %d statement(s)", len(doc["Statement"]))
        return doc

    def to_json(self) -> Optional[pulumi.Output[str]]:
        """Render the document as a JSON string once all deferred values are known."""
        doc = self.resolve()
        if doc is None:
            return None
        return pulumi.Output.from_input(doc).apply(lambda d: json.dumps(_dedupe_resolved(d)))
