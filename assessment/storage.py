import logging
import os
from pathlib import Path

from .errors import UpstreamStorageError

logger = logging.getLogger(__name__)


class BaseStorage:
    backend: str = "base"

    def put(self, key: str, data: bytes, content_type: str) -> str:
        """Store ``data`` under ``key`` ("snapshots/..." or "reports/...") and return its URL."""
        raise NotImplementedError

    def open_bytes(self, key: str) -> bytes:
        raise NotImplementedError


class LocalStorage(BaseStorage):
    backend: str = "local"
    url_prefix: str = "/uploads"

    def __init__(self, snapshot_dir: Path, report_dir: Path) -> None:
        self.snapshot_dir = snapshot_dir
        self.report_dir = report_dir
        self.snapshot_dir.mkdir(parents=True, exist_ok=True)
        self.report_dir.mkdir(parents=True, exist_ok=True)

    def _resolve(self, key: str) -> Path:
        folder, _, name = key.partition("/")
        if not name or Path(name).name != name:
            raise ValueError(f"Invalid storage key: {key!r}")
        if folder == "snapshots":
            return self.snapshot_dir / name
        if folder == "reports":
            return self.report_dir / name
        raise ValueError(f"Unknown storage folder: {folder!r}")

    def put(self, key: str, data: bytes, content_type: str) -> str:
        path = self._resolve(key)
        path.write_bytes(data)
        return f"{self.url_prefix}/{key}"

    def open_bytes(self, key: str) -> bytes:
        return self._resolve(key).read_bytes()


class DetaStorage(BaseStorage):
    backend: str = "deta"

    def __init__(self) -> None:
        from deta import Deta  # type: ignore

        project_key = os.getenv("DETA_PROJECT_KEY")
        deta = Deta(project_key) if project_key else Deta()
        self.drives = {
            "snapshots": deta.Drive("snapshots"),
            "reports": deta.Drive("reports"),
        }

    def _drive(self, key: str):
        folder, _, name = key.partition("/")
        if folder not in self.drives or not name:
            raise ValueError(f"Invalid storage key: {key!r}")
        return self.drives[folder], name

    def put(self, key: str, data: bytes, content_type: str) -> str:
        drive, name = self._drive(key)
        drive.put(name, data, content_type=content_type)
        return f"/{key}"

    def open_bytes(self, key: str) -> bytes:
        drive, name = self._drive(key)
        stream = drive.get(name)
        if stream is None:
            raise FileNotFoundError(key)
        with stream:  # type: ignore
            return stream.read()


class FallbackStorage(BaseStorage):
    """Hosted primary with a single fallback attempt on a secondary store."""

    def __init__(self, primary: BaseStorage, secondary: BaseStorage) -> None:
        self.primary = primary
        self.secondary = secondary
        self.backend = f"{primary.backend}+{secondary.backend}"

    def put(self, key: str, data: bytes, content_type: str) -> str:
        try:
            return self.primary.put(key, data, content_type)
        except Exception as exc:
            logger.warning("%s upload of %s failed, falling back to %s: %s",
                           self.primary.backend, key, self.secondary.backend, exc)
        try:
            return self.secondary.put(key, data, content_type)
        except Exception as exc:
            logger.error("Fallback upload of %s failed: %s", key, exc)
            raise UpstreamStorageError("Failed to store upload") from exc

    def open_bytes(self, key: str) -> bytes:
        return self.primary.open_bytes(key)


def local_store_of(storage: BaseStorage):
    """The local-disk store behind ``storage``, if any, for static serving."""
    if isinstance(storage, LocalStorage):
        return storage
    if isinstance(storage, FallbackStorage):
        return local_store_of(storage.secondary)
    return None


def get_storage(snapshot_dir: Path, report_dir: Path) -> BaseStorage:
    local = LocalStorage(snapshot_dir=snapshot_dir, report_dir=report_dir)
    backend = os.getenv("STORAGE_BACKEND", "local").lower()
    if backend == "deta" or os.getenv("DETA_RUNTIME"):
        return FallbackStorage(DetaStorage(), local)
    return local
