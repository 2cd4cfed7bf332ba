from __future__ import annotations

from typing import Any

# Matcher set used by the CLI and the reference tests. ARN and resource-id
# matching run first; name and tag matching pick up what they miss.
DEFAULT_MATCHERS: list[dict[str, Any]] = [
    {
        "type": "arn",
        "pattern": "arn:aws:*:*:*:*",
        "priority": 90,
        "minConfidence": 90,
        "description": "Same AWS resource by ARN",
    },
    {
        "type": "resource_id",
        "resourceType": "aws_*",
        "idAttribute": "id",
        "priority": 80,
        "minConfidence": 90,
        "description": "Same cloud id for one resource type",
    },
    {
        "type": "name",
        "includeNamespace": True,
        "fuzzyThreshold": 85,
        "priority": 50,
        "minConfidence": 85,
        "description": "k8s and helm objects by namespace and name",
    },
    {
        "type": "tag",
        "requiredTags": [{"key": "Name"}, {"key": "Environment"}],
        "matchMode": "all",
        "priority": 30,
        "minConfidence": 80,
        "description": "Resources tagged with the same Name and Environment",
    },
]


def default_rollup_config(rollup_id: str = "reference") -> dict[str, Any]:
    return {
        "rollupId": rollup_id,
        "name": f"{rollup_id} rollup",
        "matchers": [dict(matcher) for matcher in DEFAULT_MATCHERS],
        "mergeOptions": {"conflictResolution": "merge", "preserveSourceInfo": True},
    }
