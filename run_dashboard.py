#!/usr/bin/env python3
"""Launcher script for the game server dashboard.

Configuration comes from config/dashboard.yaml and environment variables
(LOG_FILE_PATH, AUTHORIZED_EMAILS, DASHBOARD_HOST, DASHBOARD_PORT, ...).
"""

import asyncio
import sys
from pathlib import Path

# Add src to Python path
sys.path.insert(0, str(Path(__file__).parent / "src"))


async def start_http_server(config):
    """Start the dashboard HTTP server."""
    from mcdash.server import DashboardServer

    print(f"Starting dashboard on {config.host}:{config.port}")
    print(f"Log file: {config.log_file_path}")
    print(f"Authorized users: {len(config.authorized_emails)}")

    server = DashboardServer(config)
    await server.start_server()


def main():
    """Main entry point."""
    try:
        from mcdash.config import DashboardConfig

        config = DashboardConfig.load()
        asyncio.run(start_http_server(config))

    except ImportError as e:
        print(f"Import error: {e}", file=sys.stderr)
        print("Please ensure dependencies are installed:", file=sys.stderr)
        print("pip install -e .", file=sys.stderr)
        sys.exit(1)
    except KeyboardInterrupt:
        pass
    except Exception as e:
        print(f"Error starting server: {e}", file=sys.stderr)
        import traceback

        traceback.print_exc(file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
