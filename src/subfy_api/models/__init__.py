"""Data models for the subfy API service."""

from subfy_api.models.config import (
    ApiConfig,
    AuthConfig,
    Network,
    NETWORK_PASSPHRASES,
    PaymentTokenDefaults,
    TasksConfig,
)
from subfy_api.models.contract import Plan, Subscription
from subfy_api.models.records import (
    DeploymentRecord,
    DeploymentStatus,
    NewDeployment,
    NewRelease,
    PaymentCurrency,
    ProjectRecord,
    ProjectStatus,
    UserRecord,
    WasmReleaseRecord,
)
from subfy_api.models.results import (
    CheckoutContext,
    CheckoutProject,
    DeployPreparation,
    DeploymentAccepted,
    InvokeResult,
    PlanPage,
    PreparedDeploy,
    PreparedTransaction,
    RenewalReport,
    SubmitResult,
    SubscriptionPage,
)

__all__ = [
    "ApiConfig", "AuthConfig", "Network", "NETWORK_PASSPHRASES",
    "PaymentTokenDefaults", "TasksConfig",
    "Plan", "Subscription",
    "DeploymentRecord", "DeploymentStatus", "NewDeployment", "NewRelease",
    "PaymentCurrency", "ProjectRecord", "ProjectStatus", "UserRecord",
    "WasmReleaseRecord",
    "CheckoutContext", "CheckoutProject", "DeployPreparation", "DeploymentAccepted",
    "InvokeResult", "PlanPage", "PreparedDeploy", "PreparedTransaction",
    "RenewalReport", "SubmitResult", "SubscriptionPage",
]
