"""Two-phase registry for values that need a descriptive API call.

Components ``register`` the fields they need while they are being
constructed and get a handle back. The program then calls ``resolve`` once,
which performs one call per API operation and fills every handle served by
that operation.
"""

import logging
from enum import Enum
from typing import Any, Callable

import pulumi

logger = logging.getLogger(__name__)


class BootstrapBrokersField(str, Enum):
    """Bootstrap broker strings returned by GetBootstrapBrokers."""

    PLAINTEXT = "bootstrap_brokers"
    TLS = "bootstrap_brokers_tls"
    SASL_SCRAM = "bootstrap_brokers_sasl_scram"
    SASL_IAM = "bootstrap_brokers_sasl_iam"
    PUBLIC_TLS = "bootstrap_brokers_public_tls"
    PUBLIC_SASL_SCRAM = "bootstrap_brokers_public_sasl_scram"
    PUBLIC_SASL_IAM = "bootstrap_brokers_public_sasl_iam"


class ZookeeperField(str, Enum):
    """ZooKeeper connection strings returned by DescribeCluster."""

    PLAINTEXT = "zookeeper_connect_string"
    TLS = "zookeeper_connect_string_tls"


class LookupNotResolvedError(Exception):
    """Raised when a lookup value is read before the registry was resolved."""


class LookupAlreadyResolvedError(Exception):
    """Raised when a resolved registry is resolved again or gets new lookups."""


class LookupHandle:
    """Placeholder for a single field of a lookup response."""

    def __init__(self, operation: str, field: str):
        self.operation = operation
        self.field = field
        self._value: Any = None
        self._resolved = False

    @property
    def resolved(self) -> bool:
        return self._resolved

    @property
    def value(self) -> pulumi.Output[str]:
        if not self._resolved:
            raise LookupNotResolvedError(
                f"Lookup '{self.operation}.{self.field}' has not been resolved yet"
            )
        return self._value

    def _set(self, value: Any) -> None:
        self._value = value
        self._resolved = True

    def __repr__(self) -> str:
        return f"LookupHandle({self.operation!r}, {self.field!r}, resolved={self._resolved})"


class LookupRegistry:
    """Registered lookups keyed by (operation, field).

    ``fetchers`` maps an operation name to a callable that performs the API
    call and returns its response. Response fields are read with ``getattr``,
    which also works on a ``pulumi.Output`` of the response.
    """

    def __init__(self, fetchers: dict[str, Callable[[], Any]]):
        self._fetchers = fetchers
        self._handles: dict[tuple[str, str], LookupHandle] = {}
        self._resolved = False

    @property
    def resolved(self) -> bool:
        return self._resolved

    @property
    def handles(self) -> list[LookupHandle]:
        return list(self._handles.values())

    def register(self, operation: str, field: str) -> LookupHandle:
        """Return the handle for ``field`` of ``operation``, creating it once."""
        if self._resolved:
            raise LookupAlreadyResolvedError(
                f"Cannot register '{operation}.{field}' after lookups were resolved"
            )
        if operation not in self._fetchers:
            raise KeyError(f"Unknown lookup operation: {operation}")

        field = field.value if isinstance(field, Enum) else field
        key = (operation, field)
        if key not in self._handles:
            logger.debug("Registering lookup %s.%s", operation, field)
            self._handles[key] = LookupHandle(operation, field)
        return self._handles[key]

    def resolve(self) -> None:
        """Perform each needed API call once and fill the registered handles."""
        if self._resolved:
            raise LookupAlreadyResolvedError("Lookups have already been resolved")

        responses: dict[str, Any] = {}
        for handle in self._handles.values():
            if handle.operation not in responses:
                logger.info("Resolving lookup operation %s", handle.operation)
                responses[handle.operation] = self._fetchers[handle.operation]()
            handle._set(getattr(responses[handle.operation], handle.field))

        self._resolved = True
