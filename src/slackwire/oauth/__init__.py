from slackwire.oauth.exchange import SlackTokenExchanger, TokenExchanger, TokenGrant
from slackwire.oauth.flow import FlowRun, FlowState, OAuthFlowController
from slackwire.oauth.memory import MemoryInstallationStore, MemoryStateStore
from slackwire.oauth.models import Installation, OAuthState
from slackwire.oauth.stores import InstallationStore, StateStore

__all__ = [
    "FlowRun",
    "FlowState",
    "Installation",
    "InstallationStore",
    "MemoryInstallationStore",
    "MemoryStateStore",
    "OAuthFlowController",
    "OAuthState",
    "SlackTokenExchanger",
    "StateStore",
    "TokenExchanger",
    "TokenGrant",
]
