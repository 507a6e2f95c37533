import os
import warnings

# Ignore warnings from third-party websocket internals
warnings.filterwarnings("ignore", category=DeprecationWarning, module="websockets.*")

# Set test environment variables before streamrelay config is imported
os.environ.update(
    {
        "RELAY_ENVIRONMENT": "test",
        "RELAY_CLIENT_ENDPOINTS": "",
        "RELAY_CLIENT_WS_ENDPOINT": "",
    }
)

# Import relay fixtures so they are available to all tests
from tests.fixtures.relay_fixtures import *  # noqa: E402, F403
