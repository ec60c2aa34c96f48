from __future__ import annotations

import json
from typing import Any

from pydantic import ConfigDict

from tierweave.core import DataModel


class CloudConfig(DataModel):
    """Cloud configuration threaded into the composer."""

    provider: str = "local"
    """Cloud provider type, e.g. ``local`` or ``amazon_web_services``."""

    region: str = "us-east-1"
    """Region the topology is placed in."""

    account_id: str | None = None
    """Account id. Looked up by the provider when not set."""

    key_pair: str | None = None
    """Key pair installed on every machine."""

    tags: dict[str, str] = dict()
    """Tags applied to every scaling group."""

    parameters: dict[str, Any] = dict()
    """Extra provider parameters."""


class NetworkContext(DataModel):
    """Network the topology is placed in."""

    vpc_id: str
    """VPC id."""

    public_subnet_ids: list[str] = list()
    """Subnets reachable from the internet."""

    private_subnet_ids: list[str] = list()
    """Subnets without a public route."""

    cidr_block: str | None = None
    """VPC CIDR block."""


class ImageSelector(DataModel):
    """Machine image lookup filter."""

    model_config = ConfigDict(frozen=True)

    owners: list[str] = list()
    """Image owners, e.g. ``self`` or an account id."""

    name_regex: str | None = None
    """Regular expression matched against image names."""

    filters: dict[str, list[str]] = dict()
    """Native filters, e.g. ``name`` or ``tag:Role``."""

    most_recent: bool = True
    """Pick the newest image when more than one matches."""

    def is_filtered(self) -> bool:
        return bool(self.name_regex) or bool(self.filters)

    def key(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True)


class ImageItem(DataModel):
    """Machine image."""

    id: str
    """Image id."""

    name: str
    """Image name."""

    owner_id: str | None = None
    """Owner account id, or ``self`` for images of the caller."""

    creation_date: str | None = None
    """ISO 8601 creation date."""

    tags: dict[str, str] = dict()
    """Image tags."""

    attributes: dict[str, str] = dict()
    """Other filterable attributes, e.g. ``virtualization-type``."""


class SubnetItem(DataModel):
    """Subnet."""

    id: str
    """Subnet id."""

    cidr_block: str
    """IPv4 CIDR block."""

    vpc_id: str | None = None
    """VPC id."""

    availability_zone: str | None = None
    """Availability zone."""
