"""CDK app entry point for the htsget deployment.

Two deploy modes:
  - stateless: HtsgetPipelineStack in the toolchain account, which promotes
               HtsgetStack through beta -> gamma -> prod
  - stage:     a single HtsgetStack for one stage, deployed directly

Deploy pipeline:   cdk deploy -c deployMode=stateless
Deploy one stage:  cdk deploy -c deployMode=stage -c stage=beta
"""
import logging
import os

import aws_cdk as cdk
from cdk_nag import AwsSolutionsChecks

from stacks.errors import ConfigurationError
from stacks.htsget_stack import compose_htsget_stack
from stacks.pipeline_stack import HtsgetPipelineStack, stage_build_environments
from stacks.stage_config import REGION, TOOLCHAIN_ACCOUNT

logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO"),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

app = cdk.App()

deploy_mode = app.node.try_get_context("deployMode")
build_environment = stage_build_environments(app.node.try_get_context("build_environment"))

if deploy_mode == "stateless":
    HtsgetPipelineStack(app, "OrcaBusStatelessHtsgetStack",
                        build_environment=build_environment,
                        env=cdk.Environment(account=TOOLCHAIN_ACCOUNT, region=REGION),
                        description="htsget - deployment pipeline for beta, gamma and prod")
elif deploy_mode == "stage":
    stage = app.node.try_get_context("stage")
    if not stage:
        raise ConfigurationError("stage is required in context ('-c stage=beta')")
    compose_htsget_stack(app, "HtsgetStack",
                         stage=stage,
                         build_environment=build_environment,
                         description="htsget - htsget-rs and htsget-auth for file manager buckets")
elif not deploy_mode:
    raise ConfigurationError("deployMode is required in context ('-c deployMode=stateless')")
else:
    raise ConfigurationError(f"Invalid deployMode '{deploy_mode}' set in the context")

tags: dict = app.node.try_get_context("tags") or {}
for tag_key, tag_value in tags.items():
    cdk.Tags.of(app).add(tag_key, tag_value)

if app.node.try_get_context("nag"):
    cdk.Aspects.of(app).add(AwsSolutionsChecks())

app.synth()
