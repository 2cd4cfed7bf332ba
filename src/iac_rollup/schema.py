from __future__ import annotations

from enum import StrEnum


class NodeKind(StrEnum):
    """Node types emitted by the IaC parsers.

    Nodes may carry any string type; these are the ones the built-in
    strategies know about.
    """

    TERRAFORM_RESOURCE = "terraform_resource"
    TERRAFORM_DATA = "terraform_data"
    TERRAFORM_MODULE = "terraform_module"
    TERRAFORM_VARIABLE = "terraform_variable"
    TERRAFORM_OUTPUT = "terraform_output"
    TERRAFORM_PROVIDER = "terraform_provider"
    K8S_DEPLOYMENT = "k8s_deployment"
    K8S_SERVICE = "k8s_service"
    K8S_CONFIGMAP = "k8s_configmap"
    K8S_SECRET = "k8s_secret"
    K8S_INGRESS = "k8s_ingress"
    K8S_NAMESPACE = "k8s_namespace"
    HELM_CHART = "helm_chart"
    HELM_RELEASE = "helm_release"
    TG_CONFIG = "tg_config"
    ARGOCD_APPLICATION = "argocd_application"


class EdgeKind(StrEnum):
    DEPENDS_ON = "depends_on"
    REFERENCES = "references"
    CREATES = "creates"
    DESTROYS = "destroys"
    MODULE_CALL = "module_call"
    MODULE_SOURCE = "module_source"
    DATA_REFERENCE = "data_reference"
    SELECTOR_MATCH = "selector_match"
    SERVICE_TARGET = "service_target"
    CONFIGMAP_REF = "configmap_ref"
    SECRET_REF = "secret_ref"


class MatchingStrategy(StrEnum):
    ARN = "arn"
    RESOURCE_ID = "resource_id"
    NAME = "name"
    TAG = "tag"


class ConflictResolution(StrEnum):
    FIRST = "first"
    LAST = "last"
    MERGE = "merge"
    ERROR = "error"


class TagMatchMode(StrEnum):
    ALL = "all"
    ANY = "any"


class ImpactDirection(StrEnum):
    FORWARD = "forward"
    REVERSE = "reverse"
    BOTH = "both"


class RiskLevel(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"
