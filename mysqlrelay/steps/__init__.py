from .firewall import FirewallRuleStep
from .hardening import NON_ESSENTIAL_UNITS, DisableServicesStep
from .nginx import ConfigureStreamProxyStep, InstallNginxStep
from .os_check import CheckOsStep
from .swap import DetectSwapStep, ProvisionSwapStep, SizeSwapStep
from .teardown import TeardownAction, teardown_tunnel
from .tunnel import (
    AuthenticateStep,
    CreateTunnelStep,
    InstallCloudflaredStep,
    TrialRunTunnelStep,
    TunnelConfigStep,
    TunnelServiceStep,
)

__all__ = [
    "CheckOsStep",
    "DetectSwapStep",
    "SizeSwapStep",
    "ProvisionSwapStep",
    "DisableServicesStep",
    "NON_ESSENTIAL_UNITS",
    "FirewallRuleStep",
    "InstallNginxStep",
    "ConfigureStreamProxyStep",
    "InstallCloudflaredStep",
    "AuthenticateStep",
    "CreateTunnelStep",
    "TunnelConfigStep",
    "TrialRunTunnelStep",
    "TunnelServiceStep",
    "TeardownAction",
    "teardown_tunnel",
]
