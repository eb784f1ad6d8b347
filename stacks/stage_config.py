"""Per-stage configuration for the htsget deployment.

Stages are a fixed enumeration promoted in order beta -> gamma -> prod. Each
stage is assembled into a single frozen ``StageConfig`` which is everything
the stack needs to provision both services for that stage.
"""
import enum
import logging
from types import MappingProxyType
from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional, Tuple

from stacks.errors import MissingStageConfig
from stacks.parameters import (
    DEFAULT_COGNITO_CLIENT_ID_PARAMETER_NAMES,
    DEFAULT_COGNITO_USER_POOL_ID_PARAMETER_NAME,
    IdentityConfig,
    ParameterStore,
    resolve_identity_config,
)
from stacks.routing import RoutingRule, bucket_set, compile_routing_rules

logger = logging.getLogger(__name__)


class Stage(enum.Enum):
    BETA = "beta"
    GAMMA = "gamma"
    PROD = "prod"

    @classmethod
    def from_name(cls, name) -> "Stage":
        if isinstance(name, cls):
            return name
        normalized = str(name).strip().lower()
        normalized = _STAGE_ALIASES.get(normalized, normalized)
        try:
            return cls(normalized)
        except ValueError:
            raise MissingStageConfig(name) from None


_STAGE_ALIASES = {"production": "prod"}

STAGE_ORDER = (Stage.BETA, Stage.GAMMA, Stage.PROD)

REGION = "ap-southeast-2"
TOOLCHAIN_ACCOUNT = "383856791668"

FILE_MANAGER_INGEST_ROLE_NAME = "orcabus-file-manager-ingest-role"
CERTIFICATE_ARN_PARAMETER_NAME = "/umccr/certificate_arn"


@dataclass(frozen=True)
class NetworkSettings:
    """How to find the shared VPC; by name and tags, never by id."""
    vpc_name: str = "main-vpc"
    vpc_tags: Mapping[str, str] = field(default_factory=lambda: {"Stack": "networking"})


@dataclass(frozen=True)
class GatewaySettings:
    api_name: str
    domain_name: str
    custom_domain_name_prefix: str
    certificate_parameter_name: str = CERTIFICATE_ARN_PARAMETER_NAME
    cors_allow_origins: Tuple[str, ...] = ()

    @property
    def custom_domain_name(self) -> str:
        return f"{self.custom_domain_name_prefix}.{self.domain_name}"


@dataclass(frozen=True)
class StageSettings:
    account: str
    domain_name: str
    file_manager_buckets: Tuple[str, ...]
    file_manager_cache_buckets: Tuple[str, ...]
    cors_allow_origins: Tuple[str, ...]


STAGE_SETTINGS: Dict[Stage, StageSettings] = {
    Stage.BETA: StageSettings(
        account="843407916570",
        domain_name="dev.umccr.org",
        file_manager_buckets=(
            "umccr-temp-dev",
            "pipeline-dev-cache-503977275616-ap-southeast-2",
        ),
        file_manager_cache_buckets=(
            "ntsm-fingerprints-843407916570-ap-southeast-2",
            "data-sharing-artifacts-843407916570-ap-southeast-2",
        ),
        cors_allow_origins=("https://portal.dev.umccr.org", "https://orcaui.dev.umccr.org"),
    ),
    Stage.GAMMA: StageSettings(
        account="455634345446",
        domain_name="stg.umccr.org",
        file_manager_buckets=(
            "umccr-temp-stg",
            "pipeline-stg-cache-503977275616-ap-southeast-2",
        ),
        file_manager_cache_buckets=(
            "ntsm-fingerprints-455634345446-ap-southeast-2",
            "data-sharing-artifacts-455634345446-ap-southeast-2",
        ),
        cors_allow_origins=("https://portal.stg.umccr.org", "https://orcaui.stg.umccr.org"),
    ),
    Stage.PROD: StageSettings(
        account="472057503814",
        domain_name="prod.umccr.org",
        file_manager_buckets=(
            "archive-prod-analysis-503977275616-ap-southeast-2",
            "archive-prod-fastq-503977275616-ap-southeast-2",
            "pipeline-prod-cache-503977275616-ap-southeast-2",
        ),
        file_manager_cache_buckets=(
            "ntsm-fingerprints-472057503814-ap-southeast-2",
            "data-sharing-artifacts-472057503814-ap-southeast-2",
        ),
        cors_allow_origins=("https://portal.umccr.org", "https://orcaui.umccr.org"),
    ),
}

VPC_LOOKUP = NetworkSettings()

HTSGET_GIT_REFERENCE = "htsget-lambda-v0.7.3"
HTSGET_AUTH_GIT_REFERENCE = "htsget-auth-v0.1.0"

DEFAULT_BUILD_ENVIRONMENT = {
    "HTSGET_GIT_REFERENCE": HTSGET_GIT_REFERENCE,
    "HTSGET_AUTH_GIT_REFERENCE": HTSGET_AUTH_GIT_REFERENCE,
    "CARGO_LAMBDA_FLAGS": "--features aws --features experimental --compiler cargo",
}


@dataclass(frozen=True)
class StageConfig:
    stage: Stage
    account: str
    region: str
    bucket_set: Tuple[str, ...]
    routing_rules: Tuple[RoutingRule, ...]
    identity: IdentityConfig
    role_name: str
    network: NetworkSettings
    auth_gateway: GatewaySettings
    retrieval_gateway: GatewaySettings
    build_environment: Mapping[str, str]


def merge_build_environment(overrides: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
    """Layer ``overrides`` on the default build arguments; overrides win."""
    return {**DEFAULT_BUILD_ENVIRONMENT, **(overrides or {})}


def assemble_stage_config(
    stage,
    store: ParameterStore,
    build_environment: Optional[Mapping[str, str]] = None,
    region: Optional[str] = None,
    client_id_parameter_names=DEFAULT_COGNITO_CLIENT_ID_PARAMETER_NAMES,
    user_pool_id_parameter_name: str = DEFAULT_COGNITO_USER_POOL_ID_PARAMETER_NAME,
) -> StageConfig:
    """Combine the fixed settings for ``stage`` with values resolved from ``store``.

    Raises ``MissingStageConfig`` for an unknown stage, and lets
    ``ParameterNotFound`` and ``InvalidBucketName`` propagate; no partial
    configuration is returned in either case.
    """
    stage = Stage.from_name(stage)
    settings = STAGE_SETTINGS[stage]
    region = region or REGION

    buckets = bucket_set(settings.file_manager_buckets, settings.file_manager_cache_buckets)
    routing_rules = tuple(compile_routing_rules(buckets))
    identity = resolve_identity_config(
        store,
        region,
        client_id_parameter_names=client_id_parameter_names,
        user_pool_id_parameter_name=user_pool_id_parameter_name,
    )

    config = StageConfig(
        stage=stage,
        account=settings.account,
        region=region,
        bucket_set=buckets,
        routing_rules=routing_rules,
        identity=identity,
        role_name=FILE_MANAGER_INGEST_ROLE_NAME,
        network=VPC_LOOKUP,
        auth_gateway=GatewaySettings(
            api_name="HtsgetAuth",
            domain_name=settings.domain_name,
            custom_domain_name_prefix="htsget-auth",
            cors_allow_origins=settings.cors_allow_origins,
        ),
        retrieval_gateway=GatewaySettings(
            api_name="Htsget",
            domain_name=settings.domain_name,
            custom_domain_name_prefix="htsget-file",
            cors_allow_origins=settings.cors_allow_origins,
        ),
        build_environment=MappingProxyType(merge_build_environment(build_environment)),
    )
    logger.info("Assembled %s: %d bucket(s), %d client id(s)",
                stage.value, len(buckets), len(identity.audience))
    return config
