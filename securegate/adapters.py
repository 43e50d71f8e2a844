"""
Concrete document resolver and generation provider
"""
import asyncio
import json
import logging
import os
import subprocess
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union

from .config import ProviderConfig, ResolverConfig
from .invoker import DocumentResolver, GenerationContext, GenerationProvider, Resolution
from .security.log_sanitizer import sanitize_for_logging
from .utils import has_unresolved_env_vars, substitute_env_vars

logger = logging.getLogger(__name__)


class FilesystemDocumentResolver(DocumentResolver):
    """Reads documents from a fixed set of directories under a base directory"""

    def __init__(self, base_dir: Union[str, Path] = ".", allowed_dirs: Optional[Sequence[str]] = None):
        self.base_dir = Path(base_dir).resolve()
        allowed = allowed_dirs if allowed_dirs is not None else ResolverConfig().allowed_dirs
        self.allowed_dirs: List[Path] = [(self.base_dir / d).resolve() for d in allowed]

    @classmethod
    def from_config(cls, config: ResolverConfig) -> "FilesystemDocumentResolver":
        return cls(config.base_dir, config.allowed_dirs)

    @staticmethod
    def _is_within(path: Path, directory: Path) -> bool:
        return path == directory or directory in path.parents

    def is_path_allowed(self, relative_path: str) -> bool:
        """True when the path stays inside at least one allowed directory"""
        return any(self._is_within((d / relative_path).resolve(), d) for d in self.allowed_dirs)

    def resolve(self, path: str) -> Resolution:
        """Try each allowed directory in order; symlinks are followed before the containment check"""
        try:
            for directory in self.allowed_dirs:
                candidate = (directory / path).resolve()
                if not self._is_within(candidate, directory):
                    continue
                if candidate.is_file():
                    modified = datetime.fromtimestamp(candidate.stat().st_mtime, tz=timezone.utc)
                    return Resolution(original_path=path, exists=True, path=candidate, last_modified=modified)

            return Resolution(original_path=path, exists=False, error="File not found in allowed directories")

        except (OSError, RuntimeError) as e:
            logger.warning(f"Failed to resolve document {path}: {e}")
            return Resolution(original_path=path, exists=False, error=f"Resolution failed: {e}")

    def read(self, resolution: Resolution) -> str:
        if not resolution.exists or resolution.path is None:
            raise FileNotFoundError(f"Document does not exist: {resolution.error or resolution.original_path}")
        if not any(self._is_within(resolution.path, d) for d in self.allowed_dirs):
            raise PermissionError(f"Document {resolution.original_path} is outside the allowed directories")
        return resolution.path.read_text(encoding="utf-8")

    def get_allowed_directories(self) -> List[str]:
        return [str(d) for d in self.allowed_dirs]


class CommandGenerationProvider(GenerationProvider):
    """
    Runs a configured command once per request.

    The generation context is written to the process's stdin as a single JSON
    document and the draft is read from its stdout.
    """

    def __init__(self, config: ProviderConfig, name: str = "generation"):
        self.config = config
        self.name = name

    def _prepare_environment(self) -> Dict[str, str]:
        """Prepare environment variables with substitution"""
        env = os.environ.copy()
        unsubstituted = []

        for key, value in self.config.env.items():
            substituted = substitute_env_vars(value)
            if has_unresolved_env_vars(substituted):
                unsubstituted.append(key)
            env[key] = substituted

        if unsubstituted:
            error_msg = (
                f"Provider {self.name} requires environment variables that are not set "
                f"(for {', '.join(sorted(unsubstituted))})"
            )
            logger.error(error_msg)
            raise RuntimeError(error_msg)

        return env

    async def generate(self, context: GenerationContext) -> str:
        if not self.config.command:
            raise RuntimeError(f"Provider {self.name} has no command configured")

        command = self.config.get_full_command()
        env = self._prepare_environment()
        payload = json.dumps(context.to_dict()).encode("utf-8")

        logger.info(f"Starting provider {self.name}: {command[0]} ({len(context.documents)} documents)")
        process = await asyncio.create_subprocess_exec(
            *command,
            stdin=subprocess.PIPE,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            env=env
        )

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(payload), timeout=self.config.timeout)
        except asyncio.TimeoutError:
            logger.error(f"Provider {self.name} timed out after {self.config.timeout}s")
            await self._kill(process)
            raise TimeoutError(f"Provider {self.name} timed out after {self.config.timeout}s")
        except asyncio.CancelledError:
            await self._kill(process)
            raise

        if stderr:
            message = sanitize_for_logging(stderr.decode(errors="replace").strip()[:500])
            logger.warning(f"Provider {self.name} stderr: {message}")

        if process.returncode != 0:
            raise RuntimeError(f"Provider {self.name} exited with code {process.returncode}")

        logger.info(f"Provider {self.name} returned {len(stdout)} bytes")
        return stdout.decode("utf-8", errors="replace").strip()

    @staticmethod
    async def _kill(process: asyncio.subprocess.Process) -> None:
        try:
            process.kill()
            await process.wait()
        except ProcessLookupError:
            # Process already terminated
            pass
