import os
from logging import getLogger
from os.path import dirname
from tempfile import NamedTemporaryFile

LOG = getLogger(__name__)


class StorageError(Exception):
    pass


# Single writer only; concurrent invocations on one machine can lose an increment.
class PostponementStore:
    def __init__(self, path: str):
        self.path = path

    def load(self) -> int:
        try:
            with open(self.path, "r", encoding="utf-8") as handle:
                raw = handle.read().strip()
        except FileNotFoundError:
            LOG.info("No postponement record at %s; starting at 0", self.path)
            self._write(0)
            return 0
        except OSError as error:
            raise StorageError(f"Cannot read {self.path}: {error}") from error
        try:
            count = int(raw)
        except ValueError:
            LOG.warning("Unreadable postponement record %r in %s; treating as 0", raw, self.path)
            return 0
        return max(0, count)

    def increment(self) -> int:
        count = self.load() + 1
        self._write(count)
        LOG.info("Recorded postponement %s in %s", count, self.path)
        return count

    def _write(self, count: int) -> None:
        directory = dirname(self.path) or "."
        try:
            os.makedirs(directory, exist_ok=True)
            with NamedTemporaryFile(
                "w", encoding="utf-8", dir=directory, prefix=".sursis-", delete=False
            ) as handle:
                handle.write(f"{count}\n")
                handle.flush()
                os.fsync(handle.fileno())
                temp_path = handle.name
            try:
                os.chmod(temp_path, 0o644)
                os.replace(temp_path, self.path)
            except OSError:
                os.unlink(temp_path)
                raise
            _fsync_directory(directory)
        except OSError as error:
            raise StorageError(f"Cannot write {self.path}: {error}") from error


def _fsync_directory(directory: str) -> None:
    try:
        fd = os.open(directory, os.O_RDONLY)
    except OSError as error:
        LOG.debug("Could not open %s for fsync: %s", directory, error)
        return
    try:
        os.fsync(fd)
    except OSError as error:
        LOG.debug("Directory fsync failed for %s: %s", directory, error)
    finally:
        os.close(fd)
