"""
Serve a swarm runtime over the RPC API.

Loads settings from an optional YAML file, starts every component and the
aiohttp RPC server, and runs until interrupted.
"""

import argparse
import asyncio
import logging

import yaml

from swarmlib import SwarmRuntime, SwarmSettings, load_settings
from swarmlib.api import RpcServer

logger = logging.getLogger(__name__)


def generate_config_template(output_path: str):
    """Write the default settings tree as a YAML file."""
    template = SwarmSettings().model_dump(mode="json")
    with open(output_path, "w") as f:
        yaml.safe_dump(template, f, default_flow_style=False, sort_keys=False)
    print(f"Config template written to {output_path}")


def build_settings(args: argparse.Namespace) -> SwarmSettings:
    """Load settings and apply command line overrides."""
    settings = load_settings(args.config)
    if args.host:
        settings.api.host = args.host
    if args.port:
        settings.api.port = args.port
    if args.data_dir:
        settings.persistence.backend = "json"
        settings.persistence.directory = args.data_dir
    if args.log_level:
        settings.log_level = args.log_level
    return settings


async def serve(settings: SwarmSettings):
    runtime = SwarmRuntime(settings)
    server = RpcServer(runtime)

    await runtime.start()
    await server.start()
    print(f"\nRPC API available at: http://{settings.api.host}:{settings.api.port}/rpc")
    print(f"Events available at: ws://{settings.api.host}:{settings.api.port}/events")

    try:
        while True:
            await asyncio.sleep(1)
    except (KeyboardInterrupt, asyncio.CancelledError):
        logger.info("Stopping swarm runtime...")
    finally:
        await server.stop()
        await runtime.shutdown()
        logger.info("Shutdown complete.")


def main():
    parser = argparse.ArgumentParser(description="Run a multi-agent swarm behind an RPC API")
    parser.add_argument("--config", "-c", help="Path to a YAML settings file")
    parser.add_argument("--host", help="Host to bind the RPC server to")
    parser.add_argument("--port", type=int, help="Port for the RPC server")
    parser.add_argument("--data-dir", help="Persist registries as JSON files in this directory")
    parser.add_argument("--log-level", help="Logging level (DEBUG, INFO, WARNING, ERROR)")
    parser.add_argument("--generate-config", help="Generate a config template file at the specified path and exit")
    args = parser.parse_args()

    if args.generate_config:
        generate_config_template(args.generate_config)
        return

    settings = build_settings(args)
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    try:
        asyncio.run(serve(settings))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
