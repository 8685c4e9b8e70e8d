"""Global, project-wide configuration constants.

This module intentionally contains **no business logic** – only the
identifiers, labels and repository layout that many modules import.

Environment-derived settings live in `certoperator.config`.
"""

from pathlib import Path

# Core roots
PACKAGE_ROOT: Path = Path(__file__).resolve().parent
MANIFESTS_DIR: Path = PACKAGE_ROOT / "manifests"

# Core Names
PROJECT_NAME = "certoperator"
PACKAGE_NAME = "certoperator"

# Descriptor API
API_GROUP = "certification.redhat.com"
API_VERSION = "v1alpha1"
DESCRIPTOR_KIND = "OperatorPipeline"
DESCRIPTOR_PLURAL = "operatorpipelines"

FINALIZER = f"{API_GROUP}/finalizer"

# Labels used for reference-counted cleanup of shared cluster resources
CLUSTER_RESOURCE_LABEL = f"{API_GROUP}/cluster-resource"
NAMESPACE_LABEL = f"{API_GROUP}/namespace"

# Environment bindings
GIT_REPO_PATH_ENV = "GIT_REPO_PATH"

# Remote manifest repository
OPERATOR_PIPELINES_REPO = "https://github.com/redhat-openshift-ecosystem/operator-pipelines.git"
REPO_DIR_NAME = "operator-pipeline"
DEFAULT_RELEASE = "main"

BASE_MANIFESTS_PATH = Path("ansible") / "roles" / "operator-pipeline" / "templates" / "openshift"
PIPELINE_MANIFESTS_PATH = BASE_MANIFESTS_PATH / "pipelines"
TASK_MANIFESTS_PATH = BASE_MANIFESTS_PATH / "tasks"

CI_PIPELINE_YML = "operator-ci-pipeline.yml"
HOSTED_PIPELINE_YML = "operator-hosted-pipeline.yml"
RELEASE_PIPELINE_YML = "operator-release-pipeline.yml"

# Shared cluster resources bundled with the package
CLUSTER_ROLE_YML = "cluster_role.yaml"
CLUSTER_ROLE_BINDING_TEMPLATE = "cluster_role_binding.yaml"
SECURITY_CONTEXT_CONSTRAINTS_YML = "security_context_constraints.yaml"

# Secret dependencies: default names and expected keys
DEFAULT_KUBECONFIG_SECRET_NAME = "kubeconfig"
DEFAULT_KUBECONFIG_SECRET_KEY = "kubeconfig"
DEFAULT_GITHUB_API_SECRET_NAME = "github-api-token"
DEFAULT_GITHUB_API_SECRET_KEY = "GITHUB_TOKEN"
DEFAULT_PYXIS_API_SECRET_NAME = "pyxis-api-secret"
DEFAULT_PYXIS_API_SECRET_KEY = "pyxis_api_key"
DEFAULT_DOCKER_REGISTRY_SECRET_KEY = ".dockerconfigjson"
DEFAULT_GITHUB_SSH_SECRET_KEY = "id_rsa"

# External catalog index and image streams
DEFAULT_PYXIS_HOST = "catalog.redhat.com/api/containers"
CERTIFIED_INDEX = "certified-operator-index"
CERTIFIED_ORGANIZATION = "certified-operators"
CERTIFIED_REGISTRY = "registry.redhat.io/redhat/certified-operator-index"
MARKETPLACE_INDEX = "redhat-marketplace-index"
MARKETPLACE_ORGANIZATION = "redhat-marketplace"
MARKETPLACE_REGISTRY = "registry.redhat.io/redhat/redhat-marketplace-index"
