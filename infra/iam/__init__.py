from infra.iam.policy_document import POLICY_VERSION, Effect, PolicyDocument, PolicyStatement
from infra.iam.principals import (
    AccountPrincipal,
    AccountRootPrincipal,
    AnyPrincipal,
    ArnPrincipal,
    CanonicalUserPrincipal,
    FederatedPrincipal,
    Principal,
    PrincipalPolicyFragment,
    PrincipalType,
    ServicePrincipal,
    merge_principal,
)

__all__ = [
    "POLICY_VERSION",
    "Effect",
    "PolicyDocument",
    "PolicyStatement",
    "AccountPrincipal",
    "AccountRootPrincipal",
    "AnyPrincipal",
    "ArnPrincipal",
    "CanonicalUserPrincipal",
    "FederatedPrincipal",
    "Principal",
    "PrincipalPolicyFragment",
    "PrincipalType",
    "ServicePrincipal",
    "merge_principal",
]
