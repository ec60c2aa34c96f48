"""
Bootstrap script templates.

Templates are formatted with ``str.format``. Every template receives
``role_name``, ``peer_group_ids``, ``cluster_size`` and ``region``; tier
specific values are passed through ``ScalingInputs.values``.
"""

CLUSTER_TAG_KEY = "consul-servers"
CLUSTER_TAG_VALUE = "auto-join"

ACCESS = """#!/bin/bash
set -euo pipefail

# role: {role_name}
# groups: {peer_group_ids}
"""

DISCOVERY = """#!/bin/bash
set -euo pipefail

# role: {role_name}
# groups: {peer_group_ids}
/opt/consul/bin/run-consul \\
  --server \\
  --cluster-tag-key "{cluster_tag_key}" \\
  --cluster-tag-value "{cluster_tag_value}"
"""

SECRET_STORE = """#!/bin/bash
set -euo pipefail

# role: {role_name}
# groups: {peer_group_ids}
/opt/vault/bin/update-certificate \\
  --vault-role "vault-server" \\
  --cert-name "vault" \\
  --common-name "vault.service.consul" || true

/opt/consul/bin/run-consul \\
  --user vault \\
  --client \\
  --cluster-tag-key "{cluster_tag_key}" \\
  --cluster-tag-value "{cluster_tag_value}" \\
  --enable-gossip-encryption \\
  --gossip-encryption-key "$(/opt/consul/bin/gossip-key --vault-role vault-server)"

/opt/vault/bin/run-vault \\
  --tls-cert-file "/opt/vault/tls/vault.crt.pem" \\
  --tls-key-file "/opt/vault/tls/vault.key.pem" \\
  --enable-s3-backend \\
  --s3-bucket "{bucket}" \\
  --s3-bucket-region "{region}" \\
  --enable-dynamo-backend \\
  --dynamo-table "{table}" \\
  --dynamo-region "{region}" \\
  --enable-auto-unseal \\
  --auto-unseal-kms-key-id "{kms_key_id}" \\
  --auto-unseal-kms-key-region "{region}"
"""

ORCHESTRATOR_SERVER = """#!/bin/bash
set -euo pipefail

# role: {role_name}
# groups: {peer_group_ids}
/opt/vault/bin/generate-certificate \\
  --vault-role "nomad-server" \\
  --tls-dir "/opt/nomad/tls" || true

/opt/consul/bin/run-consul \\
  --user nomad \\
  --client \\
  --cluster-tag-key "{cluster_tag_key}" \\
  --cluster-tag-value "{cluster_tag_value}" \\
  --enable-gossip-encryption \\
  --gossip-encryption-key "$(/opt/vault/bin/gossip-key --vault-role nomad-server --for consul)"

/opt/nomad/bin/run-nomad \\
  --server \\
  --num-servers {cluster_size} \\
  --gossip-encryption-key "$(/opt/vault/bin/gossip-key --vault-role nomad-server --for nomad)"
"""

ORCHESTRATOR_CLIENT = """#!/bin/bash
set -euo pipefail

# role: {role_name}
# groups: {peer_group_ids}
# pool size: {cluster_size}
export VAULT_ADDR=$(/opt/vault/bin/find-vault)

vault login -method=aws role="nomad-client"

/opt/consul/bin/run-consul \\
  --user nomad \\
  --client \\
  --cluster-tag-key "{cluster_tag_key}" \\
  --cluster-tag-value "{cluster_tag_value}" \\
  --enable-gossip-encryption \\
  --gossip-encryption-key "$(/opt/vault/bin/gossip-key --for consul)"

/opt/nomad/bin/run-nomad \\
  --client \\
  --gossip-encryption-key "$(/opt/vault/bin/gossip-key --for nomad)"
"""
