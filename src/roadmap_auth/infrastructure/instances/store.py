"""Read-only tenant record store.

Tenant records are owned by the provisioning/settings side of the portal;
this service only reads them. The in-memory store can be seeded from a
JSON file (a list of instance objects, or {"instances": [...]}).
"""

import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Iterable, Optional

from roadmap_auth.domain.models.instance import RoadmapInstance

logger = logging.getLogger(__name__)


class InstanceStore(ABC):
    """Lookup interface for tenant records"""

    @abstractmethod
    async def get(self, slug: str) -> Optional[RoadmapInstance]:
        pass

    @abstractmethod
    async def list_slugs(self) -> list[str]:
        """All known slugs, sorted"""
        pass

    async def list_instances(self) -> list[RoadmapInstance]:
        instances = []
        for slug in await self.list_slugs():
            instance = await self.get(slug)
            if instance is not None:
                instances.append(instance)
        return instances


class InMemoryInstanceStore(InstanceStore):
    def __init__(self, instances: Iterable[RoadmapInstance] = ()):
        self._instances = {instance.slug: instance for instance in instances}

    async def get(self, slug: str) -> Optional[RoadmapInstance]:
        return self._instances.get((slug or "").strip().lower())

    async def list_slugs(self) -> list[str]:
        return sorted(self._instances)


def load_instances_file(path: str) -> InMemoryInstanceStore:
    """Load tenant records from a JSON file

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the JSON does not describe a list of instances
    """
    file_path = Path(path)
    if not file_path.exists():
        raise FileNotFoundError(f"Instances file not found: {path}")

    with open(file_path, "r", encoding="utf-8") as f:
        data = json.load(f)

    if isinstance(data, dict):
        data = data.get("instances")
    if not isinstance(data, list):
        raise ValueError(f"Instances file must contain a list of instances: {path}")

    instances = [RoadmapInstance.model_validate(item) for item in data]
    logger.info(f"Loaded {len(instances)} roadmap instances from {path}")
    return InMemoryInstanceStore(instances)
