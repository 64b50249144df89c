from wif_broker.modules.identity.domain.keys import KeyMaterialManager
from wif_broker.modules.identity.domain.tokens import IdentityTokenIssuer
from wif_broker.modules.identity.domain.exchange import FederatedCredentialExchanger
from wif_broker.modules.identity.domain.lifecycle import CredentialLifecycleController, needs_refresh
from wif_broker.modules.identity.domain.discovery import DiscoveryPublisher
from wif_broker.modules.identity.domain.service import WorkloadIdentityApp
from wif_broker.modules.identity.domain.validation import validate_config

__all__ = [
    "KeyMaterialManager",
    "IdentityTokenIssuer",
    "FederatedCredentialExchanger",
    "CredentialLifecycleController",
    "needs_refresh",
    "DiscoveryPublisher",
    "WorkloadIdentityApp",
    "validate_config",
]
