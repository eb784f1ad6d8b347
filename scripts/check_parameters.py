"""Check that a stage's SSM parameters resolve before deploying it.

Reads the Cognito parameters directly with boto3, using whatever AWS
credentials are active (they must belong to the stage's account), and prints
the identity configuration and routing rules the stage would be deployed with.

Usage:
    python scripts/check_parameters.py beta
    python scripts/check_parameters.py prod --rules    # also print routing rules
"""
import sys

from stacks.errors import ConfigurationError
from stacks.parameters import SsmParameterStore
from stacks.stage_config import REGION, assemble_stage_config


def main():
    args = sys.argv[1:]
    stages = [arg for arg in args if not arg.startswith("--")]
    if len(stages) != 1:
        print(__doc__)
        sys.exit(2)

    try:
        config = assemble_stage_config(stages[0], SsmParameterStore(region=REGION))
    except ConfigurationError as error:
        print(f"ERROR: {error}")
        sys.exit(1)

    print(f"\n{'='*70}")
    print(f"  STAGE {config.stage.value}  (account {config.account}, {config.region})")
    print(f"{'='*70}")
    print(f"  Issuer:    {config.identity.issuer}")
    print(f"  JWKS:      {config.identity.jwks_url}")
    print(f"  Audience:  {', '.join(config.identity.audience) or '(none)'}")
    print(f"  Role:      {config.role_name}")
    print(f"  Buckets:   {len(config.bucket_set)}")

    if "--rules" in args:
        print(f"\n  {'Bucket':<52} Regex")
        print(f"  {'─'*66}")
        for rule in config.routing_rules:
            print(f"  {rule.backend.bucket:<52} {rule.regex}")
    print()


if __name__ == "__main__":
    main()
