"""Storage destination backed by GCP Secret Manager."""

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

_LABEL_PREFIX = "secrets_secret-santa_io_"


@dataclass
class GCPSecretManagerMedia(Media):
    """Stores secrets in GCP Secret Manager.

    ``client_factory`` is called with the credentials file path (empty for
    default credentials) and must return an object with
    ``create_secret(request=...)`` and ``add_secret_version(request=...)``.
    A ``close()`` method, if present, is called when the store finishes.
    """

    media_type: ClassVar[str] = "gcp-secret-manager"

    project_id: str = ""
    secret_name: str = ""
    credentials_file: str = ""
    client_factory: Callable[[str], Any] | None = field(default=None, repr=False)

    def _connect(self) -> Any:
        if self.client_factory is None:
            raise RuntimeError(
                "failed to create GCP Secret Manager client: no client factory configured"
            )
        try:
            return self.client_factory(self.credentials_file)
        except Exception as exc:
            raise RuntimeError(f"failed to create GCP Secret Manager client: {exc}") from exc

    def _labels(self, secret_santa: SecretSanta, enable_metadata: bool) -> dict[str, str]:
        labels = {**secret_santa.labels, **secret_santa.annotations}
        if enable_metadata:
            labels.update(
                {
                    f"{_LABEL_PREFIX}created-at": utc_timestamp(),
                    f"{_LABEL_PREFIX}generator-types": generator_types(secret_santa.generators),
                    f"{_LABEL_PREFIX}template-checksum": template_checksum(secret_santa.template),
                    f"{_LABEL_PREFIX}source-cr": f"{secret_santa.namespace}_{secret_santa.name}",
                }
            )
        return labels

    def store(self, secret_santa: SecretSanta, data: str, enable_metadata: bool) -> None:
        client = self._connect()
        try:
            full_name = f"{secret_santa.namespace}-{resolve_name(self.secret_name, secret_santa)}"
            resource: dict[str, Any] = {"replication": {"automatic": {}}}
            labels = self._labels(secret_santa, enable_metadata)
            if labels:
                resource["labels"] = labels
            create_request = {
                "parent": f"projects/{self.project_id}",
                "secret_id": full_name,
                "secret": resource,
            }
            try:
                client.create_secret(request=create_request)
            except Exception as exc:
                raise RuntimeError(f"failed to create secret: {exc}") from exc

            version_request = {
                "parent": f"projects/{self.project_id}/secrets/{full_name}",
                "payload": {"data": data.encode()},
            }
            try:
                client.add_secret_version(request=version_request)
            except Exception as exc:
                raise RuntimeError(f"failed to add secret version: {exc}") from exc
        finally:
            close = getattr(client, "close", None)
            if callable(close):
                close()