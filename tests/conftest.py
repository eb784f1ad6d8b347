import pytest

from stacks.parameters import (
    DEFAULT_COGNITO_CLIENT_ID_PARAMETER_NAMES,
    DEFAULT_COGNITO_USER_POOL_ID_PARAMETER_NAME,
    StaticParameterStore,
)
from stacks.stage_config import Stage, assemble_stage_config

USER_POOL_ID = "ap-southeast-2_pool1"
CLIENT_IDS = ("client-portal", "client-data2", "client-orcaui")


@pytest.fixture
def parameter_values():
    values = {DEFAULT_COGNITO_USER_POOL_ID_PARAMETER_NAME: USER_POOL_ID}
    values.update(zip(DEFAULT_COGNITO_CLIENT_ID_PARAMETER_NAMES, CLIENT_IDS))
    return values


@pytest.fixture
def parameter_store(parameter_values):
    return StaticParameterStore(parameter_values)


@pytest.fixture
def beta_config(parameter_store):
    return assemble_stage_config(Stage.BETA, parameter_store)
