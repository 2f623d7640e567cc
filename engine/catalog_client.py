"""
Catalog and upload collaborators for the character wizard.

Every call is async and returns a LoadResult instead of raising, so the wizard
can show "could not load" without any partial change to the draft. Raw rows
are decoded into definitions here, once, at load time.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
import shutil
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Generic, Iterable, List, Optional, TypeVar

from engine.error_handler import LoadError
from systems.classes import ClassDef, ClassFeature, all_classes, get_class
from systems.character_creation.backgrounds import all_background_rows, get_background_row
from systems.character_creation.definitions import (
    BackgroundDefinition,
    DefinitionError,
    RaceDefinition,
    decode_background,
    decode_race,
)
from systems.character_creation.races import all_race_rows, get_race_row

logger = logging.getLogger("charforge.catalog")

T = TypeVar("T")


@dataclass(frozen=True)
class LoadResult(Generic[T]):
    """`{data, error}`: exactly one of the two is set."""
    data: Optional[T] = None
    error: Optional[LoadError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> T:
        if self.error is not None:
            raise self.error
        return self.data


@dataclass(frozen=True)
class CatalogEntry:
    """One row of a list_* call: enough to show a picker."""
    id: str
    name: str


class CatalogClient(ABC):
    """Read-only catalog of races, classes and backgrounds."""

    @abstractmethod
    async def list_races(self) -> LoadResult[List[CatalogEntry]]:
        raise NotImplementedError

    @abstractmethod
    async def get_race_details(self, race_id: str) -> LoadResult[RaceDefinition]:
        raise NotImplementedError

    @abstractmethod
    async def list_classes(self) -> LoadResult[List[CatalogEntry]]:
        raise NotImplementedError

    @abstractmethod
    async def get_class_details(self, name: str) -> LoadResult[ClassDef]:
        raise NotImplementedError

    @abstractmethod
    async def list_class_features(
        self,
        class_id: str,
        level: int,
        subclass: Optional[str] = None,
        include_hidden: bool = False,
    ) -> LoadResult[List[ClassFeature]]:
        raise NotImplementedError

    @abstractmethod
    async def list_backgrounds(self) -> LoadResult[List[CatalogEntry]]:
        raise NotImplementedError

    @abstractmethod
    async def get_background_details(self, background_id: str) -> LoadResult[BackgroundDefinition]:
        raise NotImplementedError


class InMemoryCatalog(CatalogClient):
    """
    Catalog backed by the in-process registries.

    - latency: seconds every call waits before answering
    - delays: extra per-call waits, keyed "method" or "method:key"
    - failures: calls that answer with a LoadError, same keys as delays
    """

    def __init__(
        self,
        latency: float = 0.0,
        delays: Optional[Dict[str, float]] = None,
        failures: Optional[Iterable[str]] = None,
    ) -> None:
        self.latency = latency
        self.delays: Dict[str, float] = dict(delays or {})
        self.failures = set(failures or ())
        self.calls: List[str] = []

    def fail(self, call: str) -> None:
        self.failures.add(call)

    def recover(self, call: str) -> None:
        self.failures.discard(call)

    async def _answer(self, method: str, key: Optional[str], produce) -> LoadResult:
        call = f"{method}:{key}" if key is not None else method
        self.calls.append(call)

        wait = self.latency + self.delays.get(method, 0.0) + self.delays.get(call, 0.0)
        # Always yield once so callers see a real suspension point
        await asyncio.sleep(wait)

        if method in self.failures or call in self.failures:
            logger.warning("Catalog call %s failed (injected)", call)
            return LoadResult(error=LoadError(f"{call} unavailable", "Could not load data. Try again."))
        try:
            return LoadResult(data=produce())
        except (KeyError, DefinitionError) as e:
            logger.warning("Catalog call %s failed: %s", call, e)
            return LoadResult(error=LoadError(str(e), "Could not load data. Try again."))

    async def list_races(self) -> LoadResult[List[CatalogEntry]]:
        return await self._answer(
            "list_races", None,
            lambda: [CatalogEntry(row["id"], row["name"]) for row in all_race_rows()],
        )

    async def get_race_details(self, race_id: str) -> LoadResult[RaceDefinition]:
        return await self._answer("get_race_details", race_id, lambda: decode_race(get_race_row(race_id)))

    async def list_classes(self) -> LoadResult[List[CatalogEntry]]:
        return await self._answer(
            "list_classes", None, lambda: [CatalogEntry(c.id, c.name) for c in all_classes()]
        )

    async def get_class_details(self, name: str) -> LoadResult[ClassDef]:
        return await self._answer("get_class_details", str(name).lower(), lambda: get_class(name))

    async def list_class_features(
        self,
        class_id: str,
        level: int,
        subclass: Optional[str] = None,
        include_hidden: bool = False,
    ) -> LoadResult[List[ClassFeature]]:
        return await self._answer(
            "list_class_features",
            str(class_id).lower(),
            lambda: get_class(class_id).features_up_to(level, subclass, include_hidden),
        )

    async def list_backgrounds(self) -> LoadResult[List[CatalogEntry]]:
        return await self._answer(
            "list_backgrounds", None,
            lambda: [CatalogEntry(row["id"], row["name"]) for row in all_background_rows()],
        )

    async def get_background_details(self, background_id: str) -> LoadResult[BackgroundDefinition]:
        return await self._answer(
            "get_background_details", background_id,
            lambda: decode_background(get_background_row(background_id)),
        )


class ImageUploader(ABC):
    """Portrait upload. Purely cosmetic: the url is stored on the draft, nothing else."""

    @abstractmethod
    async def upload(self, path: Any) -> LoadResult[Dict[str, str]]:
        raise NotImplementedError


class LocalImageUploader(ImageUploader):
    """Copies the file into upload_dir under a unique name."""

    def __init__(self, upload_dir: Path) -> None:
        self.upload_dir = Path(upload_dir)

    async def upload(self, path: Any) -> LoadResult[Dict[str, str]]:
        src = Path(path)
        if not src.is_file():
            logger.warning("Upload failed: %s is not a file", src)
            return LoadResult(error=LoadError(f"{src} is not a file", "Could not upload the image."))
        dest = self.upload_dir / f"{uuid.uuid4().hex}{src.suffix.lower()}"
        try:
            await asyncio.get_running_loop().run_in_executor(None, self._copy, src, dest)
        except OSError as e:
            logger.warning("Upload of %s failed: %s", src, e)
            return LoadResult(error=LoadError(str(e), "Could not upload the image."))
        return LoadResult(data={"url": dest.as_uri()})

    def _copy(self, src: Path, dest: Path) -> None:
        self.upload_dir.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(src, dest)
