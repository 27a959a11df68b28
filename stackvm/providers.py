"""Provider lookup table, built once at startup."""

from collections.abc import Mapping
from threading import Event
from types import MappingProxyType
from typing import Callable, Literal

from .errors import ValidationError
from .orchestrator import ProvisioningOrchestrator

ProviderName = Literal["aws"]

ProviderFactory = Callable[..., ProvisioningOrchestrator]


def create_aws_orchestrator(
    *,
    region: str | None = None,
    profile: str | None = None,
    cancel: Event | None = None,
    validate: bool = True,
) -> ProvisioningOrchestrator:
    """Build an orchestrator wired to boto3 clients for one region."""
    from .aws import AWSServices

    services = AWSServices(region=region, profile=profile)
    if validate:
        services.validate_auth()
    return ProvisioningOrchestrator(
        services.stacks,
        services.compute,
        services.dns,
        services.parameters,
        cancel=cancel,
    )


class ProviderRegistry:
    """Immutable name -> factory table."""

    def __init__(self, factories: Mapping[str, ProviderFactory]):
        self._factories = MappingProxyType(dict(factories))

    def names(self) -> list[str]:
        return sorted(self._factories)

    def get(self, name: str, **kwargs) -> ProvisioningOrchestrator:
        """Build the orchestrator for ``name``.

        :param name: Provider name
        :param kwargs: Passed to the provider factory (region, profile, cancel)
        :raises ValidationError: If no provider has that name
        """
        factory = self._factories.get(name)
        if factory is None:
            raise ValidationError(
                f"Unknown provider '{name}'. Available: {', '.join(self.names())}"
            )
        return factory(**kwargs)


def build_registry() -> ProviderRegistry:
    return ProviderRegistry({"aws": create_aws_orchestrator})
