import dataclasses
import glob
import os
import re

import pytest

from stacks.errors import MissingStageConfig, ParameterNotFound
from stacks.parameters import DEFAULT_COGNITO_USER_POOL_ID_PARAMETER_NAME, StaticParameterStore
from stacks.stage_config import (
    DEFAULT_BUILD_ENVIRONMENT,
    FILE_MANAGER_INGEST_ROLE_NAME,
    HTSGET_AUTH_GIT_REFERENCE,
    HTSGET_GIT_REFERENCE,
    STAGE_ORDER,
    STAGE_SETTINGS,
    Stage,
    StageConfig,
    assemble_stage_config,
    merge_build_environment,
)


def test_production_identity():
    store = StaticParameterStore({
        DEFAULT_COGNITO_USER_POOL_ID_PARAMETER_NAME: "pool-1",
        "/client/a": "client-A",
    })

    config = assemble_stage_config("production", store, client_id_parameter_names=["/client/a"])

    assert config.stage is Stage.PROD
    assert config.region == "ap-southeast-2"
    assert config.identity.issuer == "https://cognito-idp.ap-southeast-2.amazonaws.com/pool-1"
    assert config.identity.audience == ("client-A",)


def test_unknown_stage(parameter_store):
    with pytest.raises(MissingStageConfig) as excinfo:
        assemble_stage_config("staging", parameter_store)
    assert excinfo.value.name == "staging"


@pytest.mark.parametrize("name, stage", [
    ("beta", Stage.BETA), ("GAMMA", Stage.GAMMA), ("prod", Stage.PROD),
    ("Production", Stage.PROD), (Stage.BETA, Stage.BETA),
])
def test_stage_names(name, stage):
    assert Stage.from_name(name) is stage


def test_stages_promote_in_fixed_order():
    assert STAGE_ORDER == (Stage.BETA, Stage.GAMMA, Stage.PROD)


@pytest.mark.parametrize("stage", list(Stage))
def test_every_stage_has_the_same_shape(stage, parameter_store):
    config = assemble_stage_config(stage, parameter_store)

    assert isinstance(config, StageConfig)
    assert all(getattr(config, f.name) is not None for f in dataclasses.fields(config))
    assert config.identity.audience
    assert config.role_name == FILE_MANAGER_INGEST_ROLE_NAME
    assert len(set(config.bucket_set)) == len(config.bucket_set)
    assert [rule.backend.bucket for rule in config.routing_rules] == list(config.bucket_set)
    assert config.auth_gateway.custom_domain_name != config.retrieval_gateway.custom_domain_name


def test_stages_differ_in_values(parameter_store):
    beta = assemble_stage_config(Stage.BETA, parameter_store)
    prod = assemble_stage_config(Stage.PROD, parameter_store)

    assert beta.account != prod.account
    assert beta.bucket_set != prod.bucket_set
    assert beta.retrieval_gateway.custom_domain_name == "htsget-file.dev.umccr.org"
    assert prod.auth_gateway.custom_domain_name == "htsget-auth.prod.umccr.org"


def test_missing_parameter_aborts_stage():
    with pytest.raises(ParameterNotFound):
        assemble_stage_config(Stage.GAMMA, StaticParameterStore({}))


def test_config_is_immutable(beta_config):
    with pytest.raises(dataclasses.FrozenInstanceError):
        beta_config.role_name = "other"
    with pytest.raises(TypeError):
        beta_config.build_environment["CARGO_TARGET_DIR"] = "target"


def test_build_environment_overrides_win():
    merged = merge_build_environment({"HTSGET_GIT_REFERENCE": "main", "CARGO_TARGET_DIR": "target-test"})

    assert merged["HTSGET_GIT_REFERENCE"] == "main"
    assert merged["CARGO_TARGET_DIR"] == "target-test"
    assert merged["CARGO_LAMBDA_FLAGS"] == DEFAULT_BUILD_ENVIRONMENT["CARGO_LAMBDA_FLAGS"]
    assert merge_build_environment() == DEFAULT_BUILD_ENVIRONMENT


def test_each_run_builds_a_fresh_config(parameter_store):
    first = assemble_stage_config(Stage.BETA, parameter_store, build_environment={"A": "1"})
    second = assemble_stage_config(Stage.BETA, parameter_store)

    assert "A" in first.build_environment
    assert "A" not in second.build_environment


def test_every_stage_has_settings():
    assert set(STAGE_SETTINGS) == set(Stage)


def test_both_services_build_from_pinned_references():
    assert DEFAULT_BUILD_ENVIRONMENT["HTSGET_GIT_REFERENCE"] == HTSGET_GIT_REFERENCE
    assert DEFAULT_BUILD_ENVIRONMENT["HTSGET_AUTH_GIT_REFERENCE"] == HTSGET_AUTH_GIT_REFERENCE
    assert "main" not in (HTSGET_GIT_REFERENCE, HTSGET_AUTH_GIT_REFERENCE)


def test_dockerfile_args_without_defaults_come_from_build_environment():
    lambda_dir = os.path.join(os.path.dirname(__file__), os.pardir, "stacks", "lambda_functions")
    dockerfiles = glob.glob(os.path.join(lambda_dir, "*", "Dockerfile"))
    assert len(dockerfiles) == 2

    for dockerfile in dockerfiles:
        with open(dockerfile) as f:
            required = re.findall(r"^ARG (\w+)\s*$", f.read(), flags=re.MULTILINE)
        assert required
        assert set(required) <= set(DEFAULT_BUILD_ENVIRONMENT), dockerfile
