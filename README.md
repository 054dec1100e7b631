# secretsanta

Building blocks for turning generated values into stored secrets. The package
has template helper functions, an in-process metrics registry, and storage
destinations for Kubernetes Secrets, AWS Secrets Manager, AWS SSM Parameter
Store and GCP Secret Manager.

## Installation

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Template helpers: `secretsanta.functions`

| Function | Result |
| --- | --- |
| `sha256(s)` | hex SHA-256 digest of `s` |
| `bcrypt_hash(s)` | `$2a$` bcrypt hash at cost 10; input past 72 bytes is cut off |
| `entropy(s, charset)` | `len(s) * log2(len(charset))`, lengths counted in UTF-8 bytes |
| `crc32(s)` | IEEE CRC-32 as eight lower-case hex digits |
| `url_safe_b64(s)` | padded URL-safe base64 |
| `compact(s)` | `s` with every `-` removed |
| `to_binary(value)` | an int, or a decimal integer string, in base 2; otherwise `""` |
| `to_hex(value)` | an int, or a decimal integer string, in base 16; otherwise `""` |

`to_binary` and `to_hex` reject booleans, and they reject strings whose value
falls outside the signed 64-bit range.

`func_map()` returns these functions keyed by their template names: `sha256`,
`bcrypt`, `entropy`, `crc32`, `urlSafeB64`, `compact`, `toBinary` and `toHex`.

```python
from secretsanta.functions import compact, entropy, to_hex

compact("550e8400-e29b-41d4-a716-446655440000")  # '550e8400e29b41d4a716446655440000'
to_hex("255")                                     # 'ff'
to_hex("invalid")                                 # ''
round(entropy("abc", "abcdefghijklmnopqrstuvwxyz"), 2)  # 14.1
```

## Metrics: `secretsanta.metrics`

The module has its own small metric types:

- `Counter`: only goes up, and raises `ValueError` when asked to decrease.
- `Gauge`: can be set or increased, and has `set_to_current_time()`.
- `Histogram`: counts observations into cumulative buckets. The default
  buckets are `DEFAULT_BUCKETS`.
- `Timer`: measures elapsed time and passes it to an observer, either through
  `observe_duration()` or when used as a context manager.

A metric that has label names is used through `labels(*values)`. A
`Registry` collects metrics. Registering the same name twice raises
`AlreadyRegisteredError`. `Registry.expose()` renders every series in the
text exposition format.

All of the operational metrics are registered in the module-level `REGISTRY`.
These helpers update them:

- `record_successful_generation`, `record_failed_generation`
- `record_secret_skipped`
- `record_template_validation_failed`, `record_template_validation_error`
- `record_generator_execution`
- `record_kubernetes_client_request`: a status of `"failed"` also counts
  toward the failure total.
- `record_loop_duration`
- `update_last_reconciliation_time`, `update_reconciliation_status`,
  `update_managed_secrets_count`
- `new_generator_timer`: returns a `Timer` that feeds the response-time
  histogram.
- `new_reconcile_timer`: marks the reconcile as active and returns a `Timer`
  that sets the last-duration gauge.
- `record_reconcile_complete`, `record_reconcile_error`,
  `record_secret_generated`, `update_secret_instances`

```python
from secretsanta import metrics

metrics.record_successful_generation("db-credentials", "default")
with metrics.new_generator_timer("random_password"):
    ...
print(metrics.REGISTRY.expose())
```

## Destinations

`secretsanta.media` holds the types that every destination shares:

- `SecretSanta`: name, namespace, template, generators, `secret_name`,
  `secret_type`, labels and annotations.
- `GeneratorConfig` and `MediaConfig`.
- `Media`: the abstract base class, with `store(secret_santa, data, enable_metadata)`
  and a `media_type` name.

It also holds these helpers:

- `resolve_name(override, secret_santa)`: the first non-empty value among the
  override, `secret_name` and `name`.
- `generator_types`: the generator types joined with commas.
- `template_checksum`: the first 16 hex digits of the template's SHA-256.
- `utc_timestamp`: the current UTC time in RFC 3339 form, to the second.

Each destination is given a client object, which you supply. If that client
cannot be obtained, or a call to it fails, the destination raises
`RuntimeError`.

| Class | `media_type` | Client | Stored name |
| --- | --- | --- | --- |
| `secretsanta.k8s.K8sSecretsMedia` | `k8s` | `client.create(manifest)` | `<name>` in the namespace |
| `secretsanta.aws.AWSSecretsManagerMedia` | `aws-secrets-manager` | `client_factory(region).create_secret(**request)` | `<namespace>/<name>` |
| `secretsanta.aws.AWSParameterStoreMedia` | `aws-parameter-store` | `client_factory(region).put_parameter(**request)` | `/<namespace>/<name>` (SecureString) |
| `secretsanta.gcp.GCPSecretManagerMedia` | `gcp-secret-manager` | `client_factory(credentials_file)` with `create_secret(request=...)` and `add_secret_version(request=...)` | `<namespace>-<name>` |

For the GCP destination, the secret is created first and a version holding
the data is added after it. If the client has a `close()` method, it is
called at the end.

Where each destination puts labels and annotations:

- `K8sSecretsMedia`: labels go to the Secret's labels and annotations go to
  its annotations.
- AWS destinations: both become tags.
- GCP destination: both become labels.

When `enable_metadata` is true, every destination adds four more entries:
creation time, generator types, template checksum and source resource. The
Kubernetes and AWS destinations name them under `secrets.secret-santa.io/`.
The GCP destination names them under `secrets_secret-santa_io_`.

For `kubernetes.io/tls` secrets, `secretsanta.k8s.build_string_data` takes the
`tls.crt:` and `tls.key:` lines from the data. If either line is missing or
empty, the whole data is stored under `data`, which is also where every other
secret type stores it.

```python
from secretsanta.k8s import K8sSecretsMedia
from secretsanta.media import SecretSanta


class RecordingClient:
    def __init__(self):
        self.created = []

    def create(self, manifest):
        self.created.append(manifest)


client = RecordingClient()
santa = SecretSanta(name="app", namespace="default", secret_type="Opaque")
K8sSecretsMedia(client=client).store(santa, "password: placeholder", enable_metadata=False)
client.created[0]["stringData"]  # {'data': 'password: placeholder'}
```

## What the package does not do

- It does not generate values such as passwords, keys, UUIDs or certificates.
- It does not render templates. `func_map()` only supplies the helper
  functions a template engine would call.
- It does not watch resources or run a reconcile loop.
- It does not serve metrics over HTTP. `Registry.expose()` returns the text
  and leaves serving it to you.
- It ships no Kubernetes, AWS or GCP clients. Each destination calls the
  client you give it.