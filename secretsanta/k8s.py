"""Storage destination that creates Kubernetes Secret objects."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar

from secretsanta.media import (
    Media,
    SecretSanta,
    generator_types,
    resolve_name,
    template_checksum,
    utc_timestamp,
)

TLS_SECRET_TYPE = "kubernetes.io/tls"
_METADATA_PREFIX = "secrets.secret-santa.io/"
_TLS_FIELDS = ("tls.crt", "tls.key")


def build_string_data(data: str, secret_type: str) -> dict[str, str]:
    """Map rendered data to Secret string data.

    TLS secrets take ``tls.crt:`` and ``tls.key:`` lines from the data; if
    either is missing or empty, the whole data goes under ``data``.
    """
    if secret_type != TLS_SECRET_TYPE:
        return {"data": data}
    found: dict[str, str] = {}
    for line in data.split("\n"):
        for key in _TLS_FIELDS:
            prefix = f"{key}:"
            if line.startswith(prefix):
                found[key] = line[len(prefix):].strip()
                break
    if all(found.get(key) for key in _TLS_FIELDS):
        return found
    return {"data": data}


@dataclass
class K8sSecretsMedia(Media):
    """Stores secrets as Kubernetes Secrets.

    ``client`` must offer ``create(manifest)``, taking the Secret as a
    manifest dictionary.
    """

    media_type: ClassVar[str] = "k8s"

    client: Any = field(default=None, repr=False)
    secret_name: str = ""

    def store(self, secret_santa: SecretSanta, data: str, enable_metadata: bool) -> None:
        if self.client is None:
            raise RuntimeError("no Kubernetes client configured")
        annotations = dict(secret_santa.annotations)
        if enable_metadata:
            annotations.update(
                {
                    f"{_METADATA_PREFIX}created-at": utc_timestamp(),
                    f"{_METADATA_PREFIX}generator-types": generator_types(secret_santa.generators),
                    f"{_METADATA_PREFIX}template-checksum": template_checksum(secret_santa.template),
                    f"{_METADATA_PREFIX}source-cr": f"{secret_santa.namespace}/{secret_santa.name}",
                }
            )
        manifest = {
            "apiVersion": "v1",
            "kind": "Secret",
            "metadata": {
                "name": resolve_name(self.secret_name, secret_santa),
                "namespace": secret_santa.namespace,
                "labels": dict(secret_santa.labels),
                "annotations": annotations,
            },
            "type": secret_santa.secret_type,
            "stringData": build_string_data(data, secret_santa.secret_type),
        }
        self.client.create(manifest)