import re

import pytest

from stacks.errors import ConfigurationError, InvalidBucketName
from stacks.routing import S3Backend, bucket_set, compile_routing_rules, format_locations


def test_one_rule_per_bucket_in_order():
    rules = compile_routing_rules(["data-bucket-a", "data-bucket-b"])

    assert len(rules) == 2
    assert rules[0].backend == S3Backend(bucket="data-bucket-a")
    assert rules[0].backend.kind == "S3"
    assert rules[0].regex == "^data-bucket-a/(?P<key>.*)$"
    assert rules[0].substitution_string == "$key"
    assert rules[1].backend.bucket == "data-bucket-b"


def test_compiling_twice_gives_identical_rules():
    buckets = ["umccr-temp-dev", "pipeline-dev-cache-503977275616-ap-southeast-2"]
    assert compile_routing_rules(buckets) == compile_routing_rules(buckets)


def test_rule_matches_only_its_own_bucket():
    rule, = compile_routing_rules(["data-bucket-a"])
    pattern = re.compile(rule.regex)

    match = pattern.match("data-bucket-a/path/to/sample.bam")
    assert match.group("key") == "path/to/sample.bam"
    assert pattern.match("data-bucket-ab/sample.bam") is None
    assert pattern.match("other/data-bucket-a/sample.bam") is None


def test_dots_in_bucket_names_are_literal():
    rule, = compile_routing_rules(["genomics.data"])
    pattern = re.compile(rule.regex)

    assert rule.regex == r"^genomics\.data/(?P<key>.*)$"
    assert pattern.match("genomics.data/a.cram")
    assert pattern.match("genomicsXdata/a.cram") is None
    assert rule.backend.bucket == "genomics.data"


@pytest.mark.parametrize("bucket", [
    "Data-Bucket", "bucket(a)", "bucket/a", "ab", "-bucket", "bucket-", "a..b", "bucket$", "",
])
def test_invalid_bucket_names_are_rejected(bucket):
    with pytest.raises(InvalidBucketName) as excinfo:
        compile_routing_rules(["valid-bucket", bucket])
    assert excinfo.value.bucket == bucket
    assert isinstance(excinfo.value, ConfigurationError)


def test_empty_bucket_set_compiles_to_no_rules():
    assert compile_routing_rules([]) == []


def test_format_locations():
    rules = compile_routing_rules(["bucket-a", "bucket-b"])

    assert format_locations(rules) == (
        "[{ regex=^bucket-a/(?P<key>.*)$, substitution_string=$key, "
        "backend={ kind=S3, bucket=bucket-a } }, "
        "{ regex=^bucket-b/(?P<key>.*)$, substitution_string=$key, "
        "backend={ kind=S3, bucket=bucket-b } }]"
    )


def test_bucket_set_drops_repeats_keeping_first_order():
    assert bucket_set(["b", "a"], ["c", "a"], ["b"]) == ("b", "a", "c")
