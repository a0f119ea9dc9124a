"""File-system tools exposed to the agent, rooted at a working directory."""

import logging
import re
import shutil
from datetime import (
    datetime,
    timezone,
)
from pathlib import Path
from typing import (
    Any,
    Dict,
    List,
)

logger = logging.getLogger(__name__)

IGNORED_DIRS = {"node_modules", ".git", "dist", "build", "__pycache__", ".venv"}
SEARCHABLE_SUFFIXES = {".js", ".ts", ".jsx", ".tsx", ".json", ".md", ".py", ".txt"}
MAX_SEARCH_RESULTS = 100


def _iso(timestamp: float) -> str:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).isoformat()


def _failure(exc: Exception) -> Dict[str, Any]:
    return {"success": False, "error": str(exc)}


class FileTools:
    """
    Stateless request/response file operations.

    Every method returns ``{"success": True, ...}`` or ``{"success": False, "error": ...}``;
    domain failures (missing file, bad regex) are reported, not raised.
    """

    def __init__(self, working_dir: str | Path = "."):
        self.working_dir = Path(working_dir).resolve()

    def _resolve(self, path: str) -> Path:
        full = (self.working_dir / path).resolve()
        if full != self.working_dir and self.working_dir not in full.parents:
            raise PermissionError(f"Path escapes the working directory: {path}")
        return full

    @staticmethod
    def _ignored(relative: Path) -> bool:
        return any(part in IGNORED_DIRS for part in relative.parts)

    def read_file(self, path: str) -> Dict[str, Any]:
        """Read the contents of a file"""
        try:
            full = self._resolve(path)
            content = full.read_text(encoding="utf-8")
            stats = full.stat()
        except (OSError, UnicodeDecodeError) as exc:
            return _failure(exc)
        return {
            "success": True,
            "path": path,
            "content": content,
            "size": stats.st_size,
            "modified": _iso(stats.st_mtime),
        }

    def write_file(self, path: str, content: str) -> Dict[str, Any]:
        """Write content to a file"""
        try:
            full = self._resolve(path)
            full.parent.mkdir(parents=True, exist_ok=True)
            full.write_text(content, encoding="utf-8")
        except OSError as exc:
            return _failure(exc)
        return {"success": True, "path": path, "size": len(content)}

    def list_files(self, path: str = ".", pattern: str = "**/*") -> Dict[str, Any]:
        """List files in a directory"""
        try:
            root = self._resolve(path)
            if not root.is_dir():
                raise NotADirectoryError(f"Not a directory: {path}")
            entries: List[Dict[str, Any]] = []
            for item in sorted(root.glob(pattern)):
                relative = item.relative_to(root)
                if self._ignored(relative):
                    continue
                try:
                    stats = item.stat()
                except OSError:
                    continue
                entries.append(
                    {
                        "path": relative.as_posix(),
                        "type": "directory" if item.is_dir() else "file",
                        "size": stats.st_size,
                        "modified": _iso(stats.st_mtime),
                    }
                )
        except (OSError, ValueError) as exc:
            return _failure(exc)
        return {"success": True, "path": path, "files": entries}

    def search_files(self, pattern: str, path: str = ".") -> Dict[str, Any]:
        """Search for pattern in files"""
        try:
            regex = re.compile(pattern, re.IGNORECASE)
            root = self._resolve(path)
        except (re.error, OSError) as exc:
            return _failure(exc)

        results: List[Dict[str, Any]] = []
        total = 0
        for item in sorted(root.rglob("*")):
            relative = item.relative_to(root)
            if self._ignored(relative) or not item.is_file():
                continue
            if item.suffix not in SEARCHABLE_SUFFIXES:
                continue
            try:
                lines = item.read_text(encoding="utf-8").splitlines()
            except (OSError, UnicodeDecodeError):
                logger.debug("Skipping unreadable file %s", item)
                continue
            for number, line in enumerate(lines, start=1):
                match = regex.search(line)
                if match:
                    total += 1
                    results.append(
                        {
                            "file": relative.as_posix(),
                            "line": number,
                            "content": line.strip(),
                            "match": match.group(0),
                        }
                    )
        return {
            "success": True,
            "pattern": pattern,
            "matches": total,
            "results": results[:MAX_SEARCH_RESULTS],
        }

    def create_directory(self, path: str) -> Dict[str, Any]:
        """Create a directory (and parents)"""
        try:
            self._resolve(path).mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            return _failure(exc)
        return {"success": True, "path": path}

    def delete_file(self, path: str) -> Dict[str, Any]:
        """Delete a file"""
        try:
            self._resolve(path).unlink()
        except OSError as exc:
            return _failure(exc)
        return {"success": True, "path": path}

    def copy_file(self, source: str, destination: str) -> Dict[str, Any]:
        """Copy a file"""
        try:
            dest = self._resolve(destination)
            dest.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(self._resolve(source), dest)
        except OSError as exc:
            return _failure(exc)
        return {"success": True, "source": source, "destination": destination}

    def move_file(self, source: str, destination: str) -> Dict[str, Any]:
        """Move or rename a file"""
        try:
            dest = self._resolve(destination)
            dest.parent.mkdir(parents=True, exist_ok=True)
            self._resolve(source).rename(dest)
        except OSError as exc:
            return _failure(exc)
        return {"success": True, "source": source, "destination": destination}

    def get_file_info(self, path: str) -> Dict[str, Any]:
        """Get file metadata"""
        try:
            full = self._resolve(path)
            stats = full.stat()
        except OSError as exc:
            return _failure(exc)
        return {
            "success": True,
            "path": path,
            "type": "directory" if full.is_dir() else "file",
            "size": stats.st_size,
            "created": _iso(stats.st_ctime),
            "modified": _iso(stats.st_mtime),
            "accessed": _iso(stats.st_atime),
        }
