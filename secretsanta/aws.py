"""Storage destinations backed by AWS Secrets Manager and SSM Parameter Store."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, ClassVar

from secretsanta.media import (
    Media,
    SecretSanta,
    generator_types,
    resolve_name,
    template_checksum,
    utc_timestamp,
)

_METADATA_PREFIX = "secrets.secret-santa.io/"

ClientFactory = Callable[[str], Any]


def _metadata(secret_santa: SecretSanta) -> dict[str, str]:
    return {
        f"{_METADATA_PREFIX}created-at": utc_timestamp(),
        f"{_METADATA_PREFIX}generator-types": generator_types(secret_santa.generators),
        f"{_METADATA_PREFIX}template-checksum": template_checksum(secret_santa.template),
        f"{_METADATA_PREFIX}source-cr": f"{secret_santa.namespace}/{secret_santa.name}",
    }


def _tags(secret_santa: SecretSanta, enable_metadata: bool) -> list[dict[str, str]]:
    pairs = [*secret_santa.labels.items(), *secret_santa.annotations.items()]
    if enable_metadata:
        pairs.extend(_metadata(secret_santa).items())
    return [{"Key": key, "Value": value} for key, value in pairs]


def _connect(factory: ClientFactory | None, region: str) -> Any:
    """Build a client for ``region``; raise if that is not possible."""
    if factory is None:
        raise RuntimeError("failed to load AWS config: no client factory configured")
    try:
        return factory(region)
    except Exception as exc:
        raise RuntimeError(f"failed to load AWS config: {exc}") from exc


@dataclass
class AWSSecretsManagerMedia(Media):
    """Stores secrets in AWS Secrets Manager.

    ``client_factory`` is called with the configured region (possibly empty)
    and must return an object with a ``create_secret(**request)`` method.
    """

    media_type: ClassVar[str] = "aws-secrets-manager"

    region: str = ""
    secret_name: str = ""
    kms_key_id: str = ""
    client_factory: ClientFactory | None = field(default=None, repr=False)

    def store(self, secret_santa: SecretSanta, data: str, enable_metadata: bool) -> None:
        client = _connect(self.client_factory, self.region)
        name = f"{secret_santa.namespace}/{resolve_name(self.secret_name, secret_santa)}"
        request: dict[str, Any] = {"Name": name, "SecretString": data}
        if self.kms_key_id:
            request["KmsKeyId"] = self.kms_key_id
        tags = _tags(secret_santa, enable_metadata)
        if tags:
            request["Tags"] = tags
        client.create_secret(**request)


@dataclass
class AWSParameterStoreMedia(Media):
    """Stores secrets as SecureString parameters in SSM Parameter Store.

    ``client_factory`` is called with the configured region (possibly empty)
    and must return an object with a ``put_parameter(**request)`` method.
    """

    media_type: ClassVar[str] = "aws-parameter-store"

    region: str = ""
    parameter_name: str = ""
    kms_key_id: str = ""
    client_factory: ClientFactory | None = field(default=None, repr=False)

    def store(self, secret_santa: SecretSanta, data: str, enable_metadata: bool) -> None:
        client = _connect(self.client_factory, self.region)
        name = f"/{secret_santa.namespace}/{resolve_name(self.parameter_name, secret_santa)}"
        request: dict[str, Any] = {"Name": name, "Value": data, "Type": "SecureString"}
        tags = _tags(secret_santa, enable_metadata)
        if tags:
            request["Tags"] = tags
        if self.kms_key_id:
            request["KeyId"] = self.kms_key_id
        client.put_parameter(**request)