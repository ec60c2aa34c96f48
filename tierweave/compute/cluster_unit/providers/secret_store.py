from typing import Any

from tierweave.cloud import ImageSelector
from tierweave.core import DeferredValue, Response, interpolate
from tierweave.core.dependency import ResourceNode
from tierweave.identity.role import PolicyStatement
from tierweave.network.security_group import (
    all_traffic_to,
    tcp,
    tcp_from_subnets,
)

from .. import _bootstrap
from .._models import ScalingInputs, SecurityPosture
from ._base import BaseClusterUnitProvider

API_PORT = 8200
CLUSTER_PORT = 8201

DYNAMODB_ACTIONS = [
    "dynamodb:BatchGetItem",
    "dynamodb:BatchWriteItem",
    "dynamodb:CreateTable",
    "dynamodb:DeleteItem",
    "dynamodb:DescribeLimits",
    "dynamodb:DescribeReservedCapacity",
    "dynamodb:DescribeReservedCapacityOfferings",
    "dynamodb:DescribeTable",
    "dynamodb:DescribeTimeToLive",
    "dynamodb:GetItem",
    "dynamodb:GetRecords",
    "dynamodb:ListTables",
    "dynamodb:ListTagsOfResource",
    "dynamodb:PutItem",
    "dynamodb:Query",
    "dynamodb:Scan",
    "dynamodb:UpdateItem",
]


class SecretStore(BaseClusterUnitProvider):
    """Secret store servers with bucket storage, a lock table and
    auto-unseal through a managed key.

    The API port is open to the subnets the servers run in.
    """

    bucket: ResourceNode
    table: ResourceNode
    unseal_key: ResourceNode

    def statements(self) -> list[PolicyStatement]:
        unit = self.__component__
        self.bucket = unit.declare(
            "s3_bucket",
            "storage",
            {"force_destroy": False, "versioning": True},
        )
        self.table = unit.declare(
            "dynamodb_table",
            "table",
            {
                "hash_key": "Path",
                "range_key": "Key",
                "billing_mode": "PAY_PER_REQUEST",
            },
        )
        self.unseal_key = unit.declare(
            "kms_key",
            "unseal-key",
            {"description": f"Auto-unseal key of {unit.name}"},
        )
        bucket_arn = self.bucket.attribute("arn")
        return [
            PolicyStatement(
                actions=["s3:*"],
                resources=[
                    bucket_arn,
                    interpolate(
                        "{arn}/*", name="bucket objects", arn=bucket_arn
                    ),
                ],
            ),
            PolicyStatement(
                actions=DYNAMODB_ACTIONS,
                resources=[self.table.attribute("arn")],
            ),
            PolicyStatement(
                actions=["kms:Decrypt", "kms:DescribeKey", "kms:Encrypt"],
                resources=[self.unseal_key.attribute("arn")],
            ),
            PolicyStatement(
                actions=[
                    "ec2:DescribeInstances",
                    "iam:GetInstanceProfile",
                    "iam:GetRole",
                    "iam:GetUser",
                    "sts:GetCallerIdentity",
                ],
            ),
        ]

    def build_security_posture(
        self,
        peer_groups: list[DeferredValue],
        **kwargs: Any,
    ) -> Response[SecurityPosture]:
        unit = self.__component__
        subnet_ids = unit.context.subnet_ids(
            unit.declaration.get_placement()
        )
        servers = unit.security_group(
            None,
            ingress=[
                tcp(CLUSTER_PORT, "cluster"),
                tcp(API_PORT, "api"),
                tcp_from_subnets(
                    API_PORT, unit.context.subnet_cidrs(subnet_ids), "api"
                ),
                *self._extra_ingress(),
            ],
            egress=[all_traffic_to()],
            description=f"Secret store {unit.name}",
        )
        return self._posture(
            groups=[servers],
            attached=[servers],
            peer_groups=peer_groups,
        )

    def build_scaling_spec(self, **kwargs: Any) -> Response[ScalingInputs]:
        return Response(
            result=ScalingInputs(
                template=_bootstrap.SECRET_STORE,
                image=ImageSelector(owners=["self"], name_regex="vault-.*"),
                values={
                    **self._cluster_values(),
                    "bucket": self.bucket.id,
                    "table": self.table.id,
                    "kms_key_id": self.unseal_key.attribute("key_id"),
                },
            )
        )
