"""
ccbot - A Discord assistant with two switchable LLM backends
"""

import warnings
from importlib.metadata import PackageNotFoundError, version

# LiteLLM emits cost-calculation warnings for models missing from its
# pricing table on every call.
warnings.filterwarnings(
    "ignore",
    message="Cost calculation failed.*",
    category=UserWarning,
)

try:
    __version__ = version("ccbot")
except PackageNotFoundError:
    __version__ = "0.0.0.dev0"
__logo__ = "💬"
