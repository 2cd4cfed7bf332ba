from __future__ import annotations

import pytest
from builders import scan, tf_resource

from iac_rollup.config import RollupSettings
from iac_rollup.datasets import ReferenceScanGenerator
from iac_rollup.matchers import MatcherFactory
from iac_rollup.models import RepositoryScan


@pytest.fixture
def factory() -> MatcherFactory:
    return MatcherFactory()


@pytest.fixture
def serial_settings() -> RollupSettings:
    return RollupSettings(concurrency=1, cache_matchers=True, max_nodes=None)


@pytest.fixture
def bucket_scans() -> list[RepositoryScan]:
    """Two repositories that declare the same bucket with differently cased names."""
    return [
        scan(
            "repo1",
            [
                tf_resource("aws_s3_bucket.assets", "aws_s3_bucket", bucket="My-Bucket"),
                tf_resource("aws_lambda_function.app", "aws_lambda_function", id="app"),
            ],
            [("aws_lambda_function.app", "aws_s3_bucket.assets")],
        ),
        scan(
            "repo2",
            [
                tf_resource("aws_s3_bucket.shared", "aws_s3_bucket", bucket="my-bucket"),
                tf_resource("aws_cloudfront_distribution.cdn", "aws_cloudfront_distribution", id="cdn"),
            ],
            [("aws_cloudfront_distribution.cdn", "aws_s3_bucket.shared")],
        ),
    ]


@pytest.fixture
def reference_scans() -> list[RepositoryScan]:
    return ReferenceScanGenerator(seed=7).generate(repository_count=3, resources_per_repository=20)
