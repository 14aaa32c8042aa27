from .settings import *  # noqa: F401,F403
from .logging_setup import configure_logging  # noqa: F401
