"""
Resource Seeding.

Registers resources listed in a JSON file so a deployed service starts
with the entities it manages. The file holds a list of entries:

    [
        {"kind": "riskyUser", "id": "r1",
         "attributes": {"userPrincipalName": "r1@contoso.com"}},
        {"kind": "riskyUser", "id": "r2", "status": "dismissed",
         "statusDetail": "false positive"}
    ]

Loading is idempotent: ids that already exist are left untouched, so the
same file can be applied on every start.
"""

from pathlib import Path
from typing import Any, Dict, List, Union
import json
import logging

from statusflow.application.services.transition_engine import TransitionEngine
from statusflow.domain.errors import Conflict

logger = logging.getLogger(__name__)


def read_seed(path: Union[str, Path]) -> List[Dict[str, Any]]:
    """
    Parse a seed file.

    Raises:
        ValueError: The file is not a list of objects with kind and id
    """
    with open(path, encoding="utf-8") as f:
        entries = json.load(f)

    if not isinstance(entries, list):
        raise ValueError(f"Seed file {path} must contain a JSON list")
    for index, entry in enumerate(entries):
        if not isinstance(entry, dict) or not entry.get("kind") or not entry.get("id"):
            raise ValueError(f"Seed entry {index} in {path} needs 'kind' and 'id'")
    return entries


def load_seed(engine: TransitionEngine, path: Union[str, Path]) -> int:
    """
    Register every resource in the seed file that does not exist yet.

    Returns:
        Number of resources registered by this call
    """
    registered = 0
    for entry in read_seed(path):
        try:
            engine.register(
                entry["kind"],
                resource_id=entry["id"],
                status=entry.get("status"),
                status_detail=entry.get("statusDetail"),
                attributes=entry.get("attributes"),
            )
        except Conflict:
            logger.debug(f"Seed resource {entry['id']} already registered")
            continue
        registered += 1

    logger.info(f"Seeded {registered} resources from {path}")
    return registered
