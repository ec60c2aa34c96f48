import fnmatch
import hashlib
import re
import uuid

from tierweave.core import ResourceItem, ResourceRequest
from tierweave.core.exceptions import BadRequestError, NotFoundError

from ._models import ImageItem, ImageSelector


def select_image(
    images: list[ImageItem],
    selector: ImageSelector,
) -> ImageItem:
    if not selector.is_filtered():
        raise BadRequestError(
            "Image selector needs a name_regex or at least one filter."
        )
    matches = [image for image in images if _matches(image, selector)]
    if not matches:
        raise NotFoundError(f"No image matches {selector.key()}")
    if len(matches) > 1 and not selector.most_recent:
        raise BadRequestError(
            f"{len(matches)} images match {selector.key()}; "
            "narrow the selector or set most_recent."
        )
    matches.sort(key=lambda image: image.creation_date or "", reverse=True)
    return matches[0]


def _matches(image: ImageItem, selector: ImageSelector) -> bool:
    if selector.owners and image.owner_id not in selector.owners:
        return False
    if selector.name_regex and not re.search(selector.name_regex, image.name):
        return False
    for key, patterns in selector.filters.items():
        if key == "name":
            value = image.name
        elif key.startswith("tag:"):
            value = image.tags.get(key[4:])
        else:
            value = image.attributes.get(key)
        if value is None:
            return False
        if not any(fnmatch.fnmatchcase(value, p) for p in patterns):
            return False
    return True


def allocate_resource(
    request: ResourceRequest,
    account_id: str,
    region: str,
) -> ResourceItem:
    """Allocate deterministic identifiers for a resource request.

    Identical requests in the same account and region always receive
    identical identifiers.
    """
    digest = hashlib.sha256(
        f"{request.kind}:{request.name}:{account_id}:{region}".encode()
    ).hexdigest()
    base = re.sub(r"[^A-Za-z0-9-]", "-", request.name).strip("-")
    physical = f"{base}-{digest[:8]}"
    attributes: dict[str, str] = {"name": physical}
    id = physical

    if request.kind == "security_group":
        id = f"sg-{digest[:17]}"
    elif request.kind == "iam_role":
        attributes["arn"] = f"arn:aws:iam::{account_id}:role/{physical}"
    elif request.kind == "iam_instance_profile":
        attributes["arn"] = (
            f"arn:aws:iam::{account_id}:instance-profile/{physical}"
        )
    elif request.kind in ("launch_configuration", "autoscaling_group"):
        resource = (
            "launchConfiguration"
            if request.kind == "launch_configuration"
            else "autoScalingGroup"
        )
        attributes["arn"] = (
            f"arn:aws:autoscaling:{region}:{account_id}:{resource}:"
            f"{uuid.UUID(digest[:32])}:{resource}Name/{physical}"
        )
    elif request.kind == "public_address":
        id = f"eipalloc-{digest[:17]}"
        host = int(digest[:2], 16) % 254 + 1
        attributes["public_ip"] = f"203.0.113.{host}"
    elif request.kind == "load_balancer":
        name = physical[:32].strip("-")
        attributes["name"] = name
        attributes["arn"] = id = (
            f"arn:aws:elasticloadbalancing:{region}:{account_id}:"
            f"loadbalancer/app/{name}/{digest[:16]}"
        )
        attributes["dns_name"] = (
            f"{name}-{int(digest[:8], 16)}.{region}.elb.amazonaws.com"
        )
    elif request.kind == "target_group":
        name = physical[-32:].strip("-")
        attributes["name"] = name
        attributes["arn"] = id = (
            f"arn:aws:elasticloadbalancing:{region}:{account_id}:"
            f"targetgroup/{name}/{digest[:16]}"
        )
    elif request.kind == "listener":
        attributes["arn"] = id = (
            f"arn:aws:elasticloadbalancing:{region}:{account_id}:"
            f"listener/app/{physical[:32].strip('-')}/{digest[:16]}"
        )
    elif request.kind == "s3_bucket":
        bucket = physical.lower()[:63]
        attributes["name"] = attributes["bucket"] = id = bucket
        attributes["arn"] = f"arn:aws:s3:::{bucket}"
    elif request.kind == "kms_key":
        id = str(uuid.UUID(digest[:32]))
        attributes["key_id"] = id
        attributes["arn"] = f"arn:aws:kms:{region}:{account_id}:key/{id}"
    elif request.kind == "dynamodb_table":
        attributes["arn"] = (
            f"arn:aws:dynamodb:{region}:{account_id}:table/{physical}"
        )

    attributes["id"] = id
    return ResourceItem(
        kind=request.kind,
        name=request.name,
        id=id,
        attributes=attributes,
        properties=request.properties,
    )
