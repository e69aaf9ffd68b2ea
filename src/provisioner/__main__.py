"""Run the provisioning API as a standalone HTTP server.

Usage:
    PROVISIONER_PORT=8080 python -m provisioner

Settings are read from the environment (see ProvisionerSettings.from_env).
Invalid settings abort startup before the server binds.
"""

import os
import sys

import uvicorn

from .main import create_app
from .settings import ProvisionerSettings


def main():
    port = int(os.environ.get("PROVISIONER_PORT", "8080"))
    host = os.environ.get("PROVISIONER_HOST", "127.0.0.1")
    settings = ProvisionerSettings.from_env()

    try:
        app = create_app(settings)
    except ValueError as exc:
        print(str(exc), file=sys.stderr)
        sys.exit(2)

    print(f"Provisioner starting on http://{host}:{port}")
    print(f"Environment: {settings.environment}")

    uvicorn.run(app, host=host, port=port, log_config=None)


if __name__ == "__main__":
    main()
