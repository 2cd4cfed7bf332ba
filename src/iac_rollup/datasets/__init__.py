from iac_rollup.datasets.profiles import DEFAULT_MATCHERS, default_rollup_config
from iac_rollup.datasets.reference import ReferenceScanGenerator
from iac_rollup.datasets.serialization import scans_from_payload, scans_to_payload

__all__ = [
    "DEFAULT_MATCHERS",
    "ReferenceScanGenerator",
    "default_rollup_config",
    "scans_from_payload",
    "scans_to_payload",
]
