"""Resolves the Cognito audience and issuer for a stage from SSM Parameter Store.

Lookups happen while the app is being composed, not at deploy time, so a
missing parameter stops the stage before anything is synthesized.
"""
import logging
from dataclasses import dataclass
from typing import Iterable, Mapping, Protocol, Tuple

import boto3
from aws_cdk import aws_ssm as ssm
from botocore.exceptions import ClientError
from constructs import Construct

from stacks.errors import ParameterNotFound

logger = logging.getLogger(__name__)

DEFAULT_COGNITO_USER_POOL_ID_PARAMETER_NAME = "/data_portal/client/cog_user_pool_id"
DEFAULT_COGNITO_CLIENT_ID_PARAMETER_NAMES = (
    "/data_portal/client/cog_app_client_id_stage",
    "/data_portal/client/data2/cog_app_client_id_stage",
    "/orcaui/cog_app_client_id_stage",
)
COGNITO_PROVIDER_HOST = "cognito-idp.{region}.amazonaws.com"


@dataclass(frozen=True)
class IdentityConfig:
    audience: Tuple[str, ...]
    issuer: str

    @property
    def jwks_url(self) -> str:
        return f"{self.issuer}/.well-known/jwks.json"


class ParameterStore(Protocol):
    def get(self, name: str) -> str:
        ...


class StaticParameterStore:
    """Parameter store backed by a plain mapping."""

    def __init__(self, values: Mapping[str, str]):
        self._values = dict(values)

    def get(self, name: str) -> str:
        try:
            return self._values[name]
        except KeyError:
            raise ParameterNotFound(name) from None


class SsmParameterStore:
    """Reads parameters directly from SSM with boto3."""

    def __init__(self, region: str = None, client=None):
        self._client = client or boto3.client("ssm", region_name=region)

    def get(self, name: str) -> str:
        try:
            response = self._client.get_parameter(Name=name)
        except ClientError as error:
            if error.response["Error"]["Code"] == "ParameterNotFound":
                raise ParameterNotFound(name) from error
            raise
        return response["Parameter"]["Value"]


class LookupParameterStore:
    """Resolves parameters through CDK context lookups in the scope's account.

    On a first synth CDK returns placeholder values and the CLI fills in
    ``cdk.context.json``; the CLI fails the synth if a parameter is missing.
    """

    def __init__(self, scope: Construct):
        self._scope = scope

    def get(self, name: str) -> str:
        return ssm.StringParameter.value_from_lookup(self._scope, name)


def cognito_issuer(region: str, user_pool_id: str) -> str:
    return f"https://{COGNITO_PROVIDER_HOST.format(region=region)}/{user_pool_id}"


def resolve_identity_config(
    store: ParameterStore,
    region: str,
    client_id_parameter_names: Iterable[str] = DEFAULT_COGNITO_CLIENT_ID_PARAMETER_NAMES,
    user_pool_id_parameter_name: str = DEFAULT_COGNITO_USER_POOL_ID_PARAMETER_NAME,
) -> IdentityConfig:
    """Look up the user pool and client ids and derive the token audience and issuer."""
    user_pool_id = store.get(user_pool_id_parameter_name)
    logger.debug("Resolved user pool id from %s", user_pool_id_parameter_name)

    audience = []
    for name in client_id_parameter_names:
        audience.append(store.get(name))
        logger.debug("Resolved client id from %s", name)

    return IdentityConfig(audience=tuple(audience), issuer=cognito_issuer(region, user_pool_id))
