from slackwire.models.installation import InstallationRecord
from slackwire.models.oauth_state import OAuthStateRecord

__all__ = ["InstallationRecord", "OAuthStateRecord"]
