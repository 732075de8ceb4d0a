"""Connection, credential and queue option models."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from .exceptions import ConfigurationError

if TYPE_CHECKING:
    from collections.abc import Mapping

DEFAULT_INTERVAL_MS = 10_000
DEFAULT_VISIBILITY_TIMEOUT_MS = 60_000


class ConnectionParams(BaseModel):
    """Where the queue lives. Unknown keys are kept and readable via :meth:`get`."""

    model_config = ConfigDict(extra="allow")

    region: str | None = None
    partition: str = "aws"
    account: str | None = None
    resource: str | None = None
    queue: str | None = None
    dead_queue: str | None = None
    endpoint: str | None = None
    arn: str | None = None

    def get(self, key: str, default: Any = None) -> Any:
        value = getattr(self, key, None)
        if value is None and self.model_extra:
            value = self.model_extra.get(key)
        return default if value is None else value


class CredentialParams(BaseModel):
    """Access credentials. Values are never logged."""

    model_config = ConfigDict(extra="allow")

    access_id: str | None = Field(default=None, repr=False)
    access_key: str | None = Field(default=None, repr=False)


class AwsConnectionParams(BaseModel):
    """Connection and credential parameters merged for one AWS service."""

    service: str | None = None
    region: str | None = None
    partition: str = "aws"
    account: str | None = None
    resource: str | None = None
    endpoint: str | None = None
    explicit_arn: str | None = None
    access_id: str | None = Field(default=None, repr=False)
    access_key: str | None = Field(default=None, repr=False)
    options: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def merge(
        cls,
        connection: ConnectionParams | None,
        credential: CredentialParams | None,
    ) -> AwsConnectionParams:
        connection = connection or ConnectionParams()
        credential = credential or CredentialParams()
        options = dict(connection.model_extra or {})
        for key in ("queue", "dead_queue"):
            value = getattr(connection, key)
            if value is not None:
                options[key] = value
        return cls(
            region=connection.region,
            partition=connection.partition,
            account=connection.account,
            resource=connection.resource,
            endpoint=connection.endpoint,
            explicit_arn=connection.arn,
            access_id=credential.access_id,
            access_key=credential.access_key,
            options=options,
        )

    def get(self, key: str, default: Any = None) -> Any:
        """Read a named connection option such as ``queue`` or ``dead_queue``."""
        value = self.options.get(key)
        return default if value is None else value

    @property
    def arn(self) -> str:
        if self.explicit_arn:
            return self.explicit_arn
        return ":".join(
            [
                "arn",
                self.partition,
                self.service or "",
                self.region or "",
                self.account or "",
                self.resource or "",
            ]
        )

    def validate_params(self, correlation_id: str | None = None) -> None:
        """Raise ConfigurationError if a required field is missing."""
        checks = (
            (self.region, "NO_REGION", "AWS region is not set"),
            (self.access_id, "NO_ACCESS_ID", "AWS access id is not set"),
            (self.access_key, "NO_ACCESS_KEY", "AWS access key is not set"),
            (self.resource, "NO_RESOURCE", "AWS resource (queue name) is not set"),
        )
        for value, code, message in checks:
            if not value:
                raise ConfigurationError(
                    message, code=code, correlation_id=correlation_id
                )


class QueueOptions(BaseModel):
    """Polling and lease settings, in milliseconds."""

    model_config = ConfigDict(frozen=True)

    interval: int = Field(default=DEFAULT_INTERVAL_MS, ge=0)
    visibility_timeout: int = Field(default=DEFAULT_VISIBILITY_TIMEOUT_MS, ge=0)

    def merged(self, config: Mapping[str, Any] | None) -> QueueOptions:
        """Return a copy updated from a config mapping.

        Accepts both ``interval`` and ``options.interval`` style keys.
        """
        if not config:
            return self
        data = self.model_dump()
        for key in type(self).model_fields:
            for candidate in (key, f"options.{key}"):
                if config.get(candidate) is not None:
                    data[key] = config[candidate]
        try:
            return type(self).model_validate(data)
        except PydanticValidationError as e:
            raise ConfigurationError(str(e), code="INVALID_OPTIONS") from e
