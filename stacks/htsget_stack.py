"""Htsget stack - htsget-rs and htsget-auth with access to file manager buckets.

The stack starts empty and is filled in by ``TrustChainLinker``, which hands
it one spec per phase through ``realize``. ``compose_htsget_stack`` wires a
stage's configuration, parameter lookups and the linker together.

Deploy:   cdk deploy -c deployMode=stage -c stage=beta
"""
import logging
import os
from typing import Callable, Mapping, Optional

import aws_cdk as cdk
from aws_cdk import (
    aws_apigatewayv2 as apigwv2,
    aws_apigatewayv2_authorizers as apigwv2_authorizers,
    aws_apigatewayv2_integrations as apigwv2_integrations,
    aws_certificatemanager as acm,
    aws_ec2 as ec2,
    aws_iam as iam,
    aws_lambda as lambda_,
    aws_route53 as route53,
    aws_route53_targets as route53_targets,
    aws_ssm as ssm,
)
from cdk_nag import NagSuppressions
from constructs import Construct

from stacks.linker import (
    AuthServiceSpec,
    ResourceHandle,
    RetrievalServiceSpec,
    TrustChainLinker,
)
from stacks.parameters import IdentityConfig, LookupParameterStore, ParameterStore
from stacks.stage_config import (
    REGION,
    STAGE_SETTINGS,
    GatewaySettings,
    NetworkSettings,
    Stage,
    assemble_stage_config,
)

logger = logging.getLogger(__name__)

LAMBDA_DIR = os.path.join(os.path.dirname(__file__), "lambda_functions")
FUNCTION_MEMORY_MB = 128
# Just under the 30 second API Gateway integration limit.
FUNCTION_TIMEOUT = cdk.Duration.seconds(28)


class HtsgetStack(cdk.Stack):

    def __init__(self, scope: Construct, construct_id: str, **kwargs) -> None:
        super().__init__(scope, construct_id, **kwargs)
        self.linker: Optional[TrustChainLinker] = None
        self._vpc: Optional[ec2.IVpc] = None
        self._hosted_zones = {}
        self._certificates = {}

    def realize(self, spec) -> ResourceHandle:
        if isinstance(spec, AuthServiceSpec):
            return self._auth_service(spec)
        if isinstance(spec, RetrievalServiceSpec):
            return self._retrieval_service(spec)
        raise TypeError(f"Cannot provision {type(spec).__name__}")

    # -----------------------------------------------------------
    # Shared lookups
    # -----------------------------------------------------------
    def _lookup_vpc(self, network: NetworkSettings) -> ec2.IVpc:
        if self._vpc is None:
            self._vpc = ec2.Vpc.from_lookup(
                self, "MainVpc",
                vpc_name=network.vpc_name,
                tags=dict(network.vpc_tags),
            )
        return self._vpc

    def _certificate(self, parameter_name: str) -> acm.ICertificate:
        if parameter_name not in self._certificates:
            certificate_arn = ssm.StringParameter.value_for_string_parameter(self, parameter_name)
            self._certificates[parameter_name] = acm.Certificate.from_certificate_arn(
                self, f"Certificate{len(self._certificates)}", certificate_arn,
            )
        return self._certificates[parameter_name]

    def _hosted_zone(self, domain_name: str) -> route53.IHostedZone:
        if domain_name not in self._hosted_zones:
            self._hosted_zones[domain_name] = route53.HostedZone.from_lookup(
                self, f"HostedZone{len(self._hosted_zones)}", domain_name=domain_name,
            )
        return self._hosted_zones[domain_name]

    def _docker_code(self, service: str, build_environment: Mapping[str, str]) -> lambda_.DockerImageCode:
        return lambda_.DockerImageCode.from_image_asset(
            os.path.join(LAMBDA_DIR, service),
            platform=cdk.aws_ecr_assets.Platform.LINUX_ARM64,
            build_args=dict(build_environment),
        )

    def _http_api(self, construct_id: str, settings: GatewaySettings,
                  identity: IdentityConfig) -> apigwv2.HttpApi:
        """HTTP API on a custom domain, guarded by a Cognito JWT authorizer by default."""
        domain = apigwv2.DomainName(
            self, f"{construct_id}DomainName",
            domain_name=settings.custom_domain_name,
            certificate=self._certificate(settings.certificate_parameter_name),
        )
        route53.ARecord(
            self, f"{construct_id}AliasRecord",
            zone=self._hosted_zone(settings.domain_name),
            record_name=settings.custom_domain_name_prefix,
            target=route53.RecordTarget.from_alias(route53_targets.ApiGatewayv2DomainProperties(
                domain.regional_domain_name, domain.regional_hosted_zone_id,
            )),
        )

        cors_preflight = None
        if settings.cors_allow_origins:
            cors_preflight = apigwv2.CorsPreflightOptions(
                allow_origins=list(settings.cors_allow_origins),
                allow_methods=[apigwv2.CorsHttpMethod.GET, apigwv2.CorsHttpMethod.POST,
                               apigwv2.CorsHttpMethod.HEAD, apigwv2.CorsHttpMethod.OPTIONS],
                allow_headers=["Authorization", "Content-Type", "Range"],
                allow_credentials=True,
                max_age=cdk.Duration.days(1),
            )

        return apigwv2.HttpApi(
            self, construct_id,
            api_name=settings.api_name,
            cors_preflight=cors_preflight,
            default_authorizer=apigwv2_authorizers.HttpJwtAuthorizer(
                f"{construct_id}Authorizer",
                identity.issuer,
                jwt_audience=list(identity.audience),
            ),
            default_domain_mapping=apigwv2.DomainMappingOptions(domain_name=domain),
        )

    # -----------------------------------------------------------
    # Phase 1: htsget-auth
    # -----------------------------------------------------------
    def _auth_service(self, spec: AuthServiceSpec) -> ResourceHandle:
        role = iam.Role(
            self, "HtsgetAuthRole",
            assumed_by=iam.ServicePrincipal("lambda.amazonaws.com"),
            managed_policies=[iam.ManagedPolicy.from_aws_managed_policy_name(
                "service-role/AWSLambdaVPCAccessExecutionRole")],
        )

        function = lambda_.DockerImageFunction(
            self, "HtsgetAuthFunction",
            code=self._docker_code("htsget_auth", spec.build_environment),
            architecture=lambda_.Architecture.ARM_64,
            memory_size=FUNCTION_MEMORY_MB,
            timeout=FUNCTION_TIMEOUT,
            environment=spec.environment(),
            role=role,
            vpc=self._lookup_vpc(spec.network),
            vpc_subnets=ec2.SubnetSelection(subnet_type=ec2.SubnetType.PRIVATE_WITH_EGRESS),
        )

        http_api = self._http_api("HtsgetAuthApiGateway", spec.gateway, spec.identity)
        integration = apigwv2_integrations.HttpLambdaIntegration("HtsgetAuthIntegration", function)
        schema_routes = http_api.add_routes(
            path="/schema/{proxy+}",
            methods=[apigwv2.HttpMethod.GET],
            integration=integration,
            authorizer=apigwv2.HttpNoneAuthorizer(),
        )
        http_api.add_routes(
            path="/{proxy+}",
            methods=[apigwv2.HttpMethod.GET],
            integration=integration,
        )

        NagSuppressions.add_resource_suppressions(
            role,
            [{"id": "AwsSolutions-IAM4", "reason": "allow AWS managed VPC access policy"}],
        )
        for route in schema_routes:
            NagSuppressions.add_resource_suppressions(
                route,
                [{"id": "AwsSolutions-APIG4", "reason": "the auth schema is public"}],
                apply_to_children=True,
            )

        endpoint = f"https://{spec.gateway.custom_domain_name}"
        cdk.CfnOutput(self, "HtsgetAuthEndpoint", value=endpoint)
        return ResourceHandle(resource=function, endpoint=endpoint)

    # -----------------------------------------------------------
    # Phase 2: htsget-rs
    # -----------------------------------------------------------
    def _retrieval_service(self, spec: RetrievalServiceSpec) -> ResourceHandle:
        # Owned by the file manager, which already trusts lambda.amazonaws.com.
        role = iam.Role.from_role_name(self, "HtsgetRole", spec.role_name)
        role.add_to_principal_policy(iam.PolicyStatement(
            actions=["s3:ListBucket"],
            resources=[f"arn:{self.partition}:s3:::{bucket}" for bucket in spec.buckets],
        ))
        role.add_to_principal_policy(iam.PolicyStatement(
            actions=["s3:GetObject"],
            resources=[f"arn:{self.partition}:s3:::{bucket}/*" for bucket in spec.buckets],
        ))

        function = lambda_.DockerImageFunction(
            self, "HtsgetFunction",
            code=self._docker_code("htsget_server", spec.build_environment),
            architecture=lambda_.Architecture.ARM_64,
            memory_size=FUNCTION_MEMORY_MB,
            timeout=FUNCTION_TIMEOUT,
            environment=spec.environment(),
            role=role,
            vpc=self._lookup_vpc(spec.network),
            vpc_subnets=ec2.SubnetSelection(subnet_type=ec2.SubnetType.PRIVATE_WITH_EGRESS),
        )

        http_api = self._http_api("HtsgetApiGateway", spec.gateway, spec.identity)
        http_api.add_routes(
            path="/{proxy+}",
            methods=[apigwv2.HttpMethod.GET, apigwv2.HttpMethod.POST],
            integration=apigwv2_integrations.HttpLambdaIntegration("HtsgetIntegration", function),
        )

        endpoint = f"https://{spec.gateway.custom_domain_name}"
        cdk.CfnOutput(self, "HtsgetEndpoint", value=endpoint)
        cdk.CfnOutput(self, "HtsgetTrustedAuthorizationUrl",
                      value=spec.trust_link.authorization_endpoint)
        return ResourceHandle(resource=function, endpoint=endpoint)


def compose_htsget_stack(
    scope: Construct,
    construct_id: str,
    stage,
    build_environment: Optional[Mapping[str, str]] = None,
    parameter_store_factory: Callable[[cdk.Stack], ParameterStore] = LookupParameterStore,
    **kwargs,
) -> HtsgetStack:
    """Assemble ``stage`` and provision both services into a new ``HtsgetStack``.

    Any configuration error propagates before the linker runs, so a stage
    that fails to assemble gets no resources.
    """
    stage = Stage.from_name(stage)
    logger.info("Composing %s into %s", stage.value, construct_id)
    kwargs.setdefault("env", cdk.Environment(account=STAGE_SETTINGS[stage].account, region=REGION))
    stack = HtsgetStack(scope, construct_id, **kwargs)

    config = assemble_stage_config(
        stage,
        parameter_store_factory(stack),
        build_environment=build_environment,
        region=stack.region if not cdk.Token.is_unresolved(stack.region) else None,
    )
    linker = TrustChainLinker(stack, config)
    linker.run()
    stack.linker = linker
    return stack
