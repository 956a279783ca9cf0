"""
Entrypoint: load config, init logging, build the proxied client
and send a request to each URL given on the command line.
"""

import argparse
import sys
import time

import httpx
import structlog
from dotenv import load_dotenv

from proxied_client.client import ProxiedClient
from proxied_client.config import Config
from proxied_client.errors import ProxiedClientError
from proxied_client.logging_setup import configure_logging

logger = structlog.get_logger(__name__)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Send HTTP requests, through the configured proxy if any")
    parser.add_argument("urls", nargs="+", metavar="URL")
    parser.add_argument("--method", default="GET", help="HTTP method (default: GET)")
    parser.add_argument("--config", default=None, help="path to the YAML config file")
    return parser.parse_args(argv)


def fetch(client: ProxiedClient, method: str, url: str) -> bool:
    """Send one request and log the outcome. Returns True if a response came back."""
    mode = "proxied" if client.is_proxied else "direct"
    start_time = time.time()
    try:
        response = client.request(method, url).send()
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        logger.error("request_failed", url=url, method=method, mode=mode, error=str(e))
        return False

    logger.info(
        "request_completed",
        url=url,
        method=method,
        mode=mode,
        status_code=response.status_code,
        elapsed=round(time.time() - start_time, 3),
    )
    return True


def main(argv=None, **client_kwargs) -> int:
    """Initialize dependencies and send the requests"""
    args = parse_args(argv)

    # Load environment variables from .env file
    load_dotenv()

    try:
        config = Config(args.config)
        log_config = config.logging
        configure_logging(log_config.get("level", "INFO"), log_config.get("format", "json"))
        client = ProxiedClient.new_from_config(config, **client_kwargs)
    except ProxiedClientError as e:
        logger.error("startup_failed", error=str(e))
        return 2

    with client:
        results = [fetch(client, args.method, url) for url in args.urls]

    return 0 if all(results) else 1


if __name__ == "__main__":
    sys.exit(main())
