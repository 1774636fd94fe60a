"""Basal server entry point: ``python -m basal.core.server.main``."""

from __future__ import annotations

import logging
from ipaddress import ip_address

from basal.core.config.settings import Settings, get_settings
from basal.core.server.app import create_app

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def _is_loopback_host(host: str) -> bool:
    if host == "localhost":
        return True
    try:
        return ip_address(host).is_loopback
    except ValueError:
        return False


def check_bind(settings: Settings) -> None:
    """Refuse a non-loopback bind unless explicitly allowed.

    Raises:
        RuntimeError: If ``basal_host`` is reachable from other machines and
            ``basal_allow_insecure_bind`` is not set.
    """
    if settings.basal_allow_insecure_bind or _is_loopback_host(settings.basal_host):
        return
    raise RuntimeError(
        f"Refusing to bind Basal server to {settings.basal_host}: the server has no auth "
        "layer and serves personal health data. Set BASAL_ALLOW_INSECURE_BIND=true to override."
    )


def run() -> None:
    """Start the Basal MCP server with Streamable HTTP transport."""
    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.basal_log_level.upper(), logging.INFO),
        format=LOG_FORMAT,
    )
    logger = logging.getLogger(__name__)

    check_bind(settings)
    logger.info(
        "Starting Basal Health server on %s:%d (source=%s, timezone=%s)",
        settings.basal_host,
        settings.basal_port,
        settings.health_source,
        settings.basal_timezone or "system local",
    )

    mcp = create_app()
    mcp.run(transport="streamable-http", host=settings.basal_host, port=settings.basal_port)


if __name__ == "__main__":
    run()
