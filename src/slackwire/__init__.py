__version__ = "0.1.0"

from slackwire.app import App  # noqa: E402
from slackwire.builder import AppBuilder  # noqa: E402
from slackwire.config import Config, load_config  # noqa: E402
from slackwire.context import Ack, Context  # noqa: E402
from slackwire.registry import glob  # noqa: E402
from slackwire.request import IncomingRequest, Response  # noqa: E402

__all__ = [
    "Ack",
    "App",
    "AppBuilder",
    "Config",
    "Context",
    "IncomingRequest",
    "Response",
    "glob",
    "load_config",
]
