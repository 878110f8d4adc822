"""
Hand the status document over to the monitoring agent.

The textfile collector usually runs as an unprivileged user. If its process
can be found, the document is chowned to that user; otherwise it is made
world-readable. Neither branch raises.
"""

import os
import logging
from typing import Optional, Tuple

import psutil


logger = logging.getLogger(__name__)


def find_process_owner(process_name: str) -> Optional[Tuple[int, int]]:
    """
    Find the real uid/gid of the first running process named process_name.

    Returns:
        (uid, gid) tuple, or None if no such process is visible
    """
    for proc in psutil.process_iter(['name', 'uids', 'gids']):
        try:
            if proc.info['name'] != process_name:
                continue
            uids, gids = proc.info['uids'], proc.info['gids']
            if uids is None or gids is None:
                continue
            return uids.real, gids.real
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            continue

    return None


def adjust_ownership(path: str, process_name: str) -> str:
    """
    Give the monitoring agent read access to path.

    Args:
        path: File to adjust
        process_name: Monitoring agent process name (e.g. node_exporter)

    Returns:
        'chown' if the file now belongs to the agent's user,
        'chmod' if it was made world-readable instead,
        'none' if neither was possible
    """
    try:
        owner = find_process_owner(process_name)
    except psutil.Error as e:
        logger.debug(f"Process lookup for {process_name} failed: {e}")
        owner = None

    if owner is not None:
        uid, gid = owner
        try:
            os.chown(path, uid, gid)
            logger.info(f"Status document owned by {process_name} (uid={uid}, gid={gid})")
            return 'chown'
        except OSError as e:
            logger.warning(f"Failed to chown status document to {process_name}: {e}")
    else:
        logger.info(f"{process_name} not running, making status document world-readable")

    try:
        os.chmod(path, 0o644)
        return 'chmod'
    except OSError as e:
        logger.warning(f"Failed to chmod status document: {e}")
        return 'none'
