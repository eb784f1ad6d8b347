"""Routing rules mapping htsget request paths onto S3 buckets.

A request for ``<bucket>/<key>`` is matched by the rule for ``<bucket>`` and
resolved to ``<key>`` inside that bucket:

    ^umccr-temp-dev/(?P<key>.*)$  ->  $key  ->  { kind=S3, bucket=umccr-temp-dev }
"""
import re
from dataclasses import dataclass
from typing import Iterable, List, Tuple

from stacks.errors import InvalidBucketName

KEY_GROUP = "key"

# S3 bucket naming rules, without the IP-address and prefix/suffix exceptions.
BUCKET_NAME_PATTERN = re.compile(r"^[a-z0-9][a-z0-9.-]{1,61}[a-z0-9]$")


@dataclass(frozen=True)
class S3Backend:
    bucket: str
    kind: str = "S3"

    def format(self) -> str:
        return f"{{ kind={self.kind}, bucket={self.bucket} }}"


@dataclass(frozen=True)
class RoutingRule:
    regex: str
    substitution_string: str
    backend: S3Backend

    def format(self) -> str:
        return (
            f"{{ regex={self.regex}, substitution_string={self.substitution_string}, "
            f"backend={self.backend.format()} }}"
        )


def bucket_set(*groups: Iterable[str]) -> Tuple[str, ...]:
    """Concatenate bucket groups, dropping repeats but keeping first-seen order."""
    return tuple(dict.fromkeys(bucket for group in groups for bucket in group))


def validate_bucket_name(bucket: str) -> str:
    if not isinstance(bucket, str) or not BUCKET_NAME_PATTERN.match(bucket) or ".." in bucket:
        raise InvalidBucketName(bucket)
    return bucket


def compile_routing_rules(buckets: Iterable[str]) -> List[RoutingRule]:
    """Compile one rule per bucket, preserving the order of ``buckets``."""
    rules = []
    for bucket in buckets:
        validate_bucket_name(bucket)
        # '.' is the only regex metacharacter a valid bucket name can contain.
        anchor = bucket.replace(".", r"\.")
        rules.append(RoutingRule(
            regex=f"^{anchor}/(?P<{KEY_GROUP}>.*)$",
            substitution_string=f"${KEY_GROUP}",
            backend=S3Backend(bucket=bucket),
        ))
    return rules


def format_locations(rules: Iterable[RoutingRule]) -> str:
    """Serialize rules into the list syntax read from ``HTSGET_LOCATIONS``."""
    return "[" + ", ".join(rule.format() for rule in rules) + "]"
