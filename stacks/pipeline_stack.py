"""Pipeline stack - deploys the htsget stack to beta, gamma and prod in order.

Lives in the toolchain account. Each stage is composed at synth time; a
stage whose configuration cannot be assembled fails the synth, so no later
stage is ever added to the pipeline. Prod waits for a manual approval.

Deploy:   cdk deploy -c deployMode=stateless
"""
import logging
from typing import Callable, Dict, List, Mapping, Optional

import aws_cdk as cdk
from aws_cdk import pipelines
from constructs import Construct

from stacks.errors import ConfigurationError
from stacks.htsget_stack import HtsgetStack, compose_htsget_stack
from stacks.parameters import LookupParameterStore, ParameterStore
from stacks.stage_config import REGION, STAGE_ORDER, STAGE_SETTINGS, Stage

logger = logging.getLogger(__name__)

HTSGET_STACK_NAME = "HtsgetStack"
PIPELINE_NAME = "OrcaBus-StatelessHtsget"


class HtsgetStage(cdk.Stage):
    """One deployment stage of the pipeline, holding a single htsget stack."""

    def __init__(self, scope: Construct, construct_id: str, *, stage: Stage,
                 build_environment: Optional[Mapping[str, str]] = None,
                 parameter_store_factory: Callable[[cdk.Stack], ParameterStore] = LookupParameterStore,
                 **kwargs) -> None:
        super().__init__(scope, construct_id, **kwargs)

        self.htsget_stack: HtsgetStack = compose_htsget_stack(
            self, HTSGET_STACK_NAME,
            stage=stage,
            build_environment=build_environment,
            parameter_store_factory=parameter_store_factory,
            stack_name=HTSGET_STACK_NAME,
        )


class HtsgetPipelineStack(cdk.Stack):

    def __init__(self, scope: Construct, construct_id: str, *,
                 build_environment: Optional[Mapping[str, str]] = None,
                 parameter_store_factory: Callable[[cdk.Stack], ParameterStore] = LookupParameterStore,
                 **kwargs) -> None:
        super().__init__(scope, construct_id, **kwargs)

        connection_arn = self.node.try_get_context("codestar_connection_arn")
        if not connection_arn:
            raise ConfigurationError("codestar_connection_arn is required in cdk.json context")
        repo = self.node.try_get_context("github_repo") or "umccr/service-htsget"
        branch = self.node.try_get_context("github_branch") or "main"

        # -----------------------------------------------------------
        # Source + synth
        # -----------------------------------------------------------
        source = pipelines.CodePipelineSource.connection(repo, branch, connection_arn=connection_arn)
        self.pipeline = pipelines.CodePipeline(
            self, "DeploymentPipeline",
            pipeline_name=PIPELINE_NAME,
            cross_account_keys=True,
            docker_enabled_for_synth=True,
            synth=pipelines.ShellStep(
                "CdkSynth",
                input=source,
                install_commands=[
                    "npm install -g aws-cdk",
                    "pip install .",
                ],
                commands=["cdk synth -c deployMode=stateless"],
            ),
        )

        # -----------------------------------------------------------
        # Stages, promoted in a fixed order
        # -----------------------------------------------------------
        self.stages: List[HtsgetStage] = []
        for stage in STAGE_ORDER:
            settings = STAGE_SETTINGS[stage]
            deployment = HtsgetStage(
                self, stage.name.title(),
                stage=stage,
                build_environment=build_environment,
                parameter_store_factory=parameter_store_factory,
                env=cdk.Environment(account=settings.account, region=REGION),
            )
            pre = [pipelines.ManualApprovalStep("PromoteToProd")] if stage is Stage.PROD else None
            self.pipeline.add_stage(deployment, pre=pre)
            self.stages.append(deployment)
            logger.info("Added %s stage to %s", stage.value, PIPELINE_NAME)

    @property
    def stage_names(self) -> List[str]:
        return [deployment.stage_name for deployment in self.stages]


def stage_build_environments(context: Optional[Mapping]) -> Dict[str, str]:
    """Build overrides from context, stringified for docker build args."""
    return {str(key): str(value) for key, value in (context or {}).items()}
