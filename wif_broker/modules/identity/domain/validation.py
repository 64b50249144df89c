from wif_broker.schemas.installation import ConfigValidation, InstallationConfig
from wif_broker.shared.core.constants import PROVIDER_SEGMENT, InstallationStatus

MISSING_PROJECT_ID = "Missing required Project ID"
CONTINUE_SETUP = "Continue setup"
INVALID_PROVIDER_FORMAT = (
    "Invalid Workload Identity Provider format. Must include /providers/PROVIDER_ID. "
    "Expected: projects/PROJECT_NUMBER/locations/global/workloadIdentityPools/POOL_ID/providers/PROVIDER_ID"
)


def validate_config(config: InstallationConfig) -> ConfigValidation:
    """
    Setup-phase validation, kept apart from the refresh decision.

    READY means the config is complete and well-formed, IN_PROGRESS means the
    operator has not finished setup yet, FAILED means a value is malformed.
    """
    if not config.project_id:
        return ConfigValidation(status=InstallationStatus.FAILED, message=MISSING_PROJECT_ID)
    if not config.service_account_email or not config.workload_identity_provider:
        return ConfigValidation(status=InstallationStatus.IN_PROGRESS, message=CONTINUE_SETUP)
    if PROVIDER_SEGMENT not in config.workload_identity_provider:
        return ConfigValidation(status=InstallationStatus.FAILED, message=INVALID_PROVIDER_FORMAT)
    return ConfigValidation(status=InstallationStatus.READY)
