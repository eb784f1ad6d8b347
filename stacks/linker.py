"""Links the htsget retrieval service to the authorization service deployed with it.

Provisioning is split into two phases. Phase 1 deploys ``htsget-auth`` and
its gateway, which yields the endpoint the retrieval service must trust.
Phase 2 deploys htsget-rs with that endpoint as its only trusted
authorization origin. The phase 2 spec cannot be built without the
``TrustLink`` produced by phase 1:

    IDLE -> AUTH_PROVISIONED -> LINKED -> RETRIEVAL_PROVISIONED
"""
import enum
import logging
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Protocol, Tuple

from stacks.errors import OrderingViolation
from stacks.parameters import IdentityConfig
from stacks.routing import RoutingRule, format_locations
from stacks.stage_config import GatewaySettings, NetworkSettings, StageConfig

logger = logging.getLogger(__name__)

AUTH_LOG_DIRECTIVE = "info,htsget_auth_api_lambda=trace,htsget_auth=trace"
RETRIEVAL_LOG_DIRECTIVE = (
    "info,htsget_http_lambda=trace,htsget_config=trace,htsget_http_core=trace,htsget_search=trace"
)
AUTH_API_PATH = "/api/v1/auth"


def _bracketed(values) -> str:
    return "[" + ",".join(values) + "]"


@dataclass(frozen=True)
class TrustLink:
    authorization_endpoint: str


@dataclass(frozen=True)
class AuthServiceSpec:
    identity: IdentityConfig
    gateway: GatewaySettings
    network: NetworkSettings
    build_environment: Mapping[str, str]
    log_directive: str = AUTH_LOG_DIRECTIVE

    def environment(self) -> Dict[str, str]:
        return {
            "HTSGET_AUTH_JWKS_URL": self.identity.jwks_url,
            "HTSGET_AUTH_VALIDATE_AUDIENCE": ",".join(self.identity.audience),
            "HTSGET_AUTH_VALIDATE_ISSUER": self.identity.issuer,
            "RUST_LOG": self.log_directive,
        }


@dataclass(frozen=True)
class RetrievalServiceSpec:
    routing_rules: Tuple[RoutingRule, ...]
    identity: IdentityConfig
    trust_link: TrustLink
    role_name: str
    buckets: Tuple[str, ...]
    gateway: GatewaySettings
    network: NetworkSettings
    build_environment: Mapping[str, str]
    log_directive: str = RETRIEVAL_LOG_DIRECTIVE

    def __post_init__(self):
        if not isinstance(self.trust_link, TrustLink):
            raise OrderingViolation(
                "retrieval service configured without a trust link to its authorization service"
            )

    def environment(self) -> Dict[str, str]:
        return {
            "HTSGET_LOCATIONS": format_locations(self.routing_rules),
            "HTSGET_AUTH_JWKS_URL": self.identity.jwks_url,
            "HTSGET_AUTH_VALIDATE_AUDIENCE": _bracketed(self.identity.audience),
            "HTSGET_AUTH_VALIDATE_ISSUER": _bracketed([self.identity.issuer]),
            "HTSGET_AUTH_TRUSTED_AUTHORIZATION_URLS": _bracketed(
                [self.trust_link.authorization_endpoint]
            ),
            "AWS_LAMBDA_HTTP_IGNORE_STAGE_IN_PATH": "true",
            "RUST_LOG": self.log_directive,
        }


@dataclass(frozen=True)
class ResourceHandle:
    resource: Any
    endpoint: str


class ProvisioningRuntime(Protocol):
    def realize(self, spec) -> ResourceHandle:
        ...


class LinkState(enum.Enum):
    IDLE = "idle"
    AUTH_PROVISIONED = "auth-provisioned"
    LINKED = "linked"
    RETRIEVAL_PROVISIONED = "retrieval-provisioned"


class TrustChainLinker:
    """Drives the two provisioning phases for one stage, strictly in order."""

    def __init__(self, runtime: ProvisioningRuntime, config: StageConfig):
        self.runtime = runtime
        self.config = config
        self.state = LinkState.IDLE
        self.auth: Optional[ResourceHandle] = None
        self.retrieval: Optional[ResourceHandle] = None
        self._trust_link: Optional[TrustLink] = None

    def _require(self, expected: LinkState, action: str):
        if self.state is not expected:
            raise OrderingViolation(
                f"cannot {action} in state {self.state.value}, expected {expected.value}"
            )

    def provision_authorization(self) -> ResourceHandle:
        self._require(LinkState.IDLE, "provision the authorization service")
        spec = AuthServiceSpec(
            identity=self.config.identity,
            gateway=self.config.auth_gateway,
            network=self.config.network,
            build_environment=self.config.build_environment,
        )
        self.auth = self.runtime.realize(spec)
        self.state = LinkState.AUTH_PROVISIONED
        logger.info("%s: authorization service provisioned at %s",
                    self.config.stage.value, self.auth.endpoint)
        return self.auth

    def link(self) -> TrustLink:
        self._require(LinkState.AUTH_PROVISIONED, "link the retrieval service")
        if not self.auth.endpoint:
            raise OrderingViolation("authorization service has no endpoint to link")
        self._trust_link = TrustLink(authorization_endpoint=self.auth.endpoint + AUTH_API_PATH)
        self.state = LinkState.LINKED
        return self._trust_link

    def provision_retrieval(self) -> ResourceHandle:
        self._require(LinkState.LINKED, "provision the retrieval service")
        # The link is handed over once; it is not reused for another spec.
        trust_link, self._trust_link = self._trust_link, None
        spec = RetrievalServiceSpec(
            routing_rules=self.config.routing_rules,
            identity=self.config.identity,
            trust_link=trust_link,
            role_name=self.config.role_name,
            buckets=self.config.bucket_set,
            gateway=self.config.retrieval_gateway,
            network=self.config.network,
            build_environment=self.config.build_environment,
        )
        self.retrieval = self.runtime.realize(spec)
        self.state = LinkState.RETRIEVAL_PROVISIONED
        logger.info("%s: retrieval service provisioned at %s, trusting %s",
                    self.config.stage.value, self.retrieval.endpoint,
                    trust_link.authorization_endpoint)
        return self.retrieval

    def run(self) -> ResourceHandle:
        self.provision_authorization()
        self.link()
        return self.provision_retrieval()
