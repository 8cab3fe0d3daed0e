"""Environment descriptors and the trigger mapping table."""

import json
from fnmatch import fnmatchcase
from pathlib import Path

from pydantic import ValidationError

from promoter.core.exceptions import (
    ConfigurationError,
    UnknownEnvironmentError,
    UnmappedTriggerError,
)
from promoter.models.environment import (
    EnvironmentDescriptor,
    EnvironmentName,
    EnvironmentsConfig,
    TriggerRule,
)

DEFAULT_CONFIG = EnvironmentsConfig(
    environments=[
        EnvironmentDescriptor(
            name=EnvironmentName.DEV,
            desired_count=1,
            cpu=256,
            memory=512,
            variables={"APP_ENV": "development", "LOG_LEVEL": "debug"},
        ),
        EnvironmentDescriptor(
            name=EnvironmentName.STAGING,
            desired_count=1,
            cpu=256,
            memory=512,
            variables={"APP_ENV": "staging", "LOG_LEVEL": "info"},
        ),
        EnvironmentDescriptor(
            name=EnvironmentName.PROD,
            desired_count=2,
            cpu=512,
            memory=1024,
            variables={"APP_ENV": "production", "LOG_LEVEL": "warning"},
            approval_required=True,
        ),
    ],
    triggers=[
        TriggerRule(pattern="develop", environment=EnvironmentName.DEV),
        TriggerRule(pattern="feature/*", environment=EnvironmentName.DEV),
        TriggerRule(pattern="main", environment=EnvironmentName.STAGING),
        TriggerRule(pattern="release/*", environment=EnvironmentName.STAGING),
        TriggerRule(pattern="v*", environment=EnvironmentName.PROD),
    ],
)


class EnvironmentRegistry:
    """Validated, read-only view of the environments configuration.

    Construction fails fast on inconsistent configuration: duplicate
    descriptors, trigger rules or promotion stages pointing at unknown
    environments, or a ``prod`` descriptor without an approval gate.
    """

    def __init__(self, config: EnvironmentsConfig):
        descriptors: dict[EnvironmentName, EnvironmentDescriptor] = {}
        for descriptor in config.environments:
            if descriptor.name in descriptors:
                raise ConfigurationError(
                    f"Duplicate descriptor for '{descriptor.name.value}'",
                    {"environment": descriptor.name.value},
                )
            descriptors[descriptor.name] = descriptor

        for rule in config.triggers:
            if rule.environment not in descriptors:
                raise ConfigurationError(
                    f"Trigger '{rule.pattern}' targets unconfigured environment "
                    f"'{rule.environment.value}'",
                    {"pattern": rule.pattern, "environment": rule.environment.value},
                )

        if len(set(config.promotion_order)) != len(config.promotion_order):
            raise ConfigurationError("Promotion order lists an environment twice")
        for name in config.promotion_order:
            if name not in descriptors:
                raise ConfigurationError(
                    f"Promotion order includes unconfigured environment '{name.value}'",
                    {"environment": name.value},
                )

        prod = descriptors.get(EnvironmentName.PROD)
        if prod is not None and not prod.approval_required:
            raise ConfigurationError(
                "The prod environment must require approval",
                {"environment": prod.name.value},
            )

        self._descriptors = descriptors
        self._triggers = list(config.triggers)
        self._order = list(config.promotion_order)

    @classmethod
    def from_file(cls, path: str | Path) -> "EnvironmentRegistry":
        """Load and validate a JSON environments file."""
        path = Path(path)
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            raise ConfigurationError(
                f"Environments file not found: {path}", {"path": str(path)}
            ) from None
        except json.JSONDecodeError as e:
            raise ConfigurationError(
                f"Invalid environments file: {e}", {"path": str(path)}
            ) from e

        try:
            config = EnvironmentsConfig.model_validate(raw)
        except ValidationError as e:
            raise ConfigurationError(
                "Invalid environments file",
                {"path": str(path), "errors": e.errors(include_url=False)},
            ) from e
        return cls(config)

    @classmethod
    def default(cls) -> "EnvironmentRegistry":
        return cls(DEFAULT_CONFIG)

    def get(self, environment: EnvironmentName | str) -> EnvironmentDescriptor:
        """Get a descriptor or raise UnknownEnvironmentError."""
        try:
            name = EnvironmentName(environment)
        except ValueError:
            raise UnknownEnvironmentError(str(environment)) from None
        descriptor = self._descriptors.get(name)
        if descriptor is None:
            raise UnknownEnvironmentError(name.value)
        return descriptor

    def all(self) -> list[EnvironmentDescriptor]:
        """Descriptors in promotion order, then any unordered ones."""
        ordered = [self._descriptors[name] for name in self._order]
        rest = [d for name, d in self._descriptors.items() if name not in self._order]
        return ordered + rest

    def match(self, branch_or_tag: str) -> EnvironmentDescriptor:
        """Descriptor of the first trigger rule matching ``branch_or_tag``."""
        for rule in self._triggers:
            if fnmatchcase(branch_or_tag, rule.pattern):
                return self._descriptors[rule.environment]
        raise UnmappedTriggerError(branch_or_tag)

    def next_stage(self, environment: EnvironmentName) -> EnvironmentName | None:
        """Environment that follows ``environment`` in the promotion order."""
        if environment not in self._order:
            return None
        index = self._order.index(environment)
        if index + 1 >= len(self._order):
            return None
        return self._order[index + 1]

    @property
    def triggers(self) -> list[TriggerRule]:
        return list(self._triggers)
