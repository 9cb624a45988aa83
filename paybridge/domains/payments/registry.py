"""Gateway registry: in-memory name -> gateway lookup built once at startup."""

from enum import Enum
from typing import Iterable, Union

from paybridge.core.logging import logger
from paybridge.domains.payments.exceptions import UnknownGatewayError
from paybridge.domains.payments.protocols import GatewayRegistryProtocol, PaymentGateway

registry_logger = logger.with_prefix("GatewayRegistry: ").with_context(
    component="gateway_registry"
)


def _key(name: Union[str, Enum]) -> str:
    value = name.value if isinstance(name, Enum) else name
    return str(value).lower()


class GatewayRegistry(GatewayRegistryProtocol):
    """In-memory gateway registry."""

    def __init__(self, gateways: Iterable[PaymentGateway] = ()) -> None:
        """Register the given gateways in order."""
        self._gateways: dict[str, PaymentGateway] = {}
        for gateway in gateways:
            self.register(gateway)

    def register(self, gateway: PaymentGateway) -> None:
        """Add or replace a gateway under its name."""
        self._gateways[gateway.name.value] = gateway
        registry_logger.debug(
            f"Registered {gateway.name.value} (configured={gateway.is_configured()})"
        )

    def get(self, name: Union[str, Enum]) -> PaymentGateway:
        """Get a gateway by name.

        Raises:
            UnknownGatewayError: If no gateway is registered under ``name``.
        """
        gateway = self._gateways.get(_key(name))
        if gateway is None:
            raise UnknownGatewayError(_key(name))
        return gateway

    def all(self) -> list[PaymentGateway]:
        return list(self._gateways.values())

    def configured(self) -> list[PaymentGateway]:
        return [g for g in self._gateways.values() if g.is_configured()]

    def is_configured(self, name: Union[str, Enum]) -> bool:
        """True if ``name`` is registered and has its credentials."""
        gateway = self._gateways.get(_key(name))
        return gateway is not None and gateway.is_configured()

    def __contains__(self, name: object) -> bool:
        return isinstance(name, (str, Enum)) and _key(name) in self._gateways
