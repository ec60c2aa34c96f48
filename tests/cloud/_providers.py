from typing import Any

from botocore.stub import Stubber
from common.data import ACCOUNT_ID, REGION, local_parameters

from tierweave.cloud import Cloud
from tierweave.cloud.providers.amazon_web_services import AmazonWebServices


class CloudProvider:
    LOCAL = "local"
    AMAZON_WEB_SERVICES = "amazon_web_services"


provider_parameters: dict[str, dict[str, Any]] = {
    CloudProvider.LOCAL: local_parameters,
    CloudProvider.AMAZON_WEB_SERVICES: {
        "region": REGION,
        "account_id": ACCOUNT_ID,
        "aws_access_key_id": "testing",
        "aws_secret_access_key": "testing",
    },
}


def get_component(provider_type: str) -> Cloud:
    return Cloud(
        __provider__=dict(
            type=provider_type,
            parameters=provider_parameters[provider_type],
        )
    )


def get_stubbed_component(
    **parameters: Any,
) -> tuple[Cloud, Stubber, Stubber]:
    provider = AmazonWebServices(
        **(
            provider_parameters[CloudProvider.AMAZON_WEB_SERVICES]
            | parameters
        )
    )
    provider.__setup__()
    return (
        Cloud(__provider__=provider),
        Stubber(provider._ec2_client),
        Stubber(provider._sts_client),
    )
