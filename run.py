#!/usr/bin/env python3
"""
Governance Workflow Engine Entry Point

Starts the FastAPI server with the governance workflow engine.
"""

import sys

from governance_engine.api import run_server
from governance_engine.config import get_config


if __name__ == "__main__":
    settings = get_config()
    print("Starting Governance Workflow Engine...")
    print(f"Storage: {settings.database_url}")
    print(f"Audit partition: {settings.default_audit_partition}")
    print(f"API available at: http://localhost:{settings.api_port}")
    print(f"Documentation at: http://localhost:{settings.api_port}/docs")
    print()

    try:
        run_server(debug=False)
    except KeyboardInterrupt:
        print("\nShutting down Governance Workflow Engine...")
    except Exception as e:
        print(f"Error starting server: {e}")
        sys.exit(1)
