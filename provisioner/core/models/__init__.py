"""
Domain models — pydantic and dataclass types for a provisioning run.

All models are re-exported here for convenient access:

    from provisioner.core.models import Step, StepOutcome, RunResult, Identity
"""

from provisioner.core.models.identity import Identity
from provisioner.core.models.profile import (
    Profile,
    RetrySettings,
    Settings,
    StepSpec,
    VerifySpec,
)
from provisioner.core.models.result import ExecResult
from provisioner.core.models.step import (
    FailurePolicy,
    RunResult,
    Step,
    StepContext,
    StepOutcome,
    StepStatus,
)
from provisioner.core.models.verification import (
    VerificationItem,
    VerificationReport,
    VerificationStatus,
)

__all__ = [
    # result.py
    "ExecResult",
    # step.py
    "FailurePolicy",
    # identity.py
    "Identity",
    # profile.py
    "Profile",
    "RetrySettings",
    "RunResult",
    "Settings",
    "Step",
    "StepContext",
    "StepOutcome",
    "StepSpec",
    "StepStatus",
    # verification.py
    "VerificationItem",
    "VerificationReport",
    "VerificationStatus",
    "VerifySpec",
]
