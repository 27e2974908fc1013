"""
Host sink package for Owl Focus.

Picks the sink implementation for the current environment.
"""

import logging

from sinks.base import HostSinks, LiveActivitySnapshot

logger = logging.getLogger(__name__)


def create_host_sinks(headless: bool = False) -> HostSinks:
    """
    Create the sinks the controller pushes feedback into.

    Args:
        headless: If True, return no-op sinks (no sound, speech or files).

    Returns:
        HostSinks implementation.
    """
    if headless:
        logger.info("Using headless sinks")
        return HostSinks()

    from sinks.desktop import DesktopSinks
    return DesktopSinks()


__all__ = ["HostSinks", "LiveActivitySnapshot", "create_host_sinks"]
