"""
Cloud lookups on Amazon Web Services.
"""

__all__ = ["AmazonWebServices"]

import threading
from typing import Any

import boto3
from botocore.exceptions import ClientError

from tierweave.core import Context, Response, info
from tierweave.core.exceptions import BadRequestError, NotFoundError

from .._helper import select_image
from .._models import ImageItem, ImageSelector, SubnetItem
from ._base import BaseCloudProvider


class AmazonWebServices(BaseCloudProvider):
    region: str
    account_id: str | None
    profile_name: str | None
    aws_access_key_id: str | None
    aws_secret_access_key: str | None
    aws_session_token: str | None
    nparams: dict[str, Any]

    _ec2_client: Any
    _sts_client: Any
    _init: bool = False

    def __init__(
        self,
        region: str = "us-east-1",
        account_id: str | None = None,
        profile_name: str | None = None,
        aws_access_key_id: str | None = None,
        aws_secret_access_key: str | None = None,
        aws_session_token: str | None = None,
        nparams: dict[str, Any] = dict(),
        **kwargs: Any,
    ):
        """Initialize.

        Args:
            region:
                AWS region name.
            account_id:
                AWS account id. Looked up with STS when not set.
            profile_name:
                AWS profile name.
            aws_access_key_id:
                AWS access key id.
            aws_secret_access_key:
                AWS secret access key.
            aws_session_token:
                AWS session token.
            nparams:
                Native parameters to boto3 clients.
        """
        self.region = region
        self.account_id = account_id
        self.profile_name = profile_name
        self.aws_access_key_id = aws_access_key_id
        self.aws_secret_access_key = aws_secret_access_key
        self.aws_session_token = aws_session_token
        self.nparams = nparams
        self._account_lock = threading.Lock()
        super().__init__(**kwargs)

    def __setup__(self, context: Context | None = None) -> None:
        if self._init:
            return

        session_kwargs: dict[str, Any] = {}
        if self.profile_name:
            session_kwargs["profile_name"] = self.profile_name
        if self.aws_access_key_id:
            session_kwargs["aws_access_key_id"] = self.aws_access_key_id
        if self.aws_secret_access_key:
            session_kwargs["aws_secret_access_key"] = (
                self.aws_secret_access_key
            )
        if self.aws_session_token:
            session_kwargs["aws_session_token"] = self.aws_session_token

        session = boto3.Session(**session_kwargs)
        self._ec2_client = session.client(
            "ec2", region_name=self.region, **self.nparams
        )
        self._sts_client = session.client(
            "sts", region_name=self.region, **self.nparams
        )
        self._init = True

    def find_image(
        self,
        selector: ImageSelector,
        **kwargs: Any,
    ) -> Response[ImageItem]:
        if not selector.is_filtered():
            raise BadRequestError(
                "Image selector needs a name_regex or at least one filter."
            )
        self.__setup__()
        args: dict[str, Any] = {
            "Filters": [
                {"Name": name, "Values": values}
                for name, values in selector.filters.items()
            ]
        }
        if selector.owners:
            args["Owners"] = selector.owners
        try:
            response = self._ec2_client.describe_images(**args)
        except ClientError as e:
            raise BadRequestError(f"Could not look up images: {e}") from e

        images = [
            ImageItem(
                id=image["ImageId"],
                name=image.get("Name", ""),
                owner_id=image.get("OwnerId"),
                creation_date=image.get("CreationDate"),
                tags={t["Key"]: t["Value"] for t in image.get("Tags", [])},
            )
            for image in response.get("Images", [])
        ]
        # EC2 already applied owners and filters.
        remaining = ImageSelector(
            name_regex=selector.name_regex or ".*",
            most_recent=selector.most_recent,
        )
        image = select_image(images, remaining)
        info("Selected image %s (%s)", image.id, image.name)
        return Response(result=image, native=dict(result=response))

    def get_subnets(
        self,
        subnet_ids: list[str],
        **kwargs: Any,
    ) -> Response[list[SubnetItem]]:
        self.__setup__()
        try:
            response = self._ec2_client.describe_subnets(SubnetIds=subnet_ids)
        except ClientError as e:
            if e.response["Error"]["Code"] == "InvalidSubnetID.NotFound":
                raise NotFoundError(f"Subnets not found: {e}") from e
            raise BadRequestError(f"Could not look up subnets: {e}") from e

        found = {
            subnet["SubnetId"]: SubnetItem(
                id=subnet["SubnetId"],
                cidr_block=subnet["CidrBlock"],
                vpc_id=subnet.get("VpcId"),
                availability_zone=subnet.get("AvailabilityZone"),
            )
            for subnet in response.get("Subnets", [])
        }
        missing = [id for id in subnet_ids if id not in found]
        if missing:
            raise NotFoundError(f"Subnets not found: {', '.join(missing)}")
        return Response(
            result=[found[id] for id in subnet_ids],
            native=dict(result=response),
        )

    def _get_account_id(self) -> str:
        with self._account_lock:
            if self.account_id:
                return self.account_id
            self.__setup__()
            identity = self._sts_client.get_caller_identity()
            self.account_id = identity["Account"]
            return self.account_id
