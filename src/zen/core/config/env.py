"""Environment loading helpers.

zen supports layered environment files:
- OS environment (highest precedence)
- Project environment files (``.env``, ``.env.local``)
- User environment file (``~/.config/zen/.env``)
- An extra file named by ``ZEN_ENV_FILE``, read after the project files

A ``.env`` value never overrides a variable already exported in the process
environment. Among the files, later ones win: project files over the user
file, ``.env.local`` over ``.env``, and ``ZEN_ENV_FILE`` over both.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Iterable
from pathlib import Path

from dotenv import dotenv_values

logger = logging.getLogger(__name__)

ENV_FILE_VAR = "ZEN_ENV_FILE"


def _read_env(path: Path) -> dict[str, str]:
    if not path.exists():
        return {}
    return {str(k): str(v) for k, v in dotenv_values(path).items() if k is not None and v is not None}


def load_layered_env(
    *,
    project_dir: Path | None = None,
    user_env_paths: Iterable[Path] | None = None,
    project_env_paths: Iterable[Path] | None = None,
) -> set[str]:
    """Load user and project .env files into os.environ.

    Args:
        project_dir: base directory for project env paths (defaults to cwd)
        user_env_paths: explicit user env file paths
        project_env_paths: explicit project env file paths

    ``ZEN_ENV_FILE`` (relative paths resolve against project_dir) is read
    last among the files, so it wins over the project files.

    Returns:
        Names of the variables that were set
    """
    if project_dir is None:
        project_dir = Path.cwd()

    if user_env_paths is None:
        xdg_home = Path(os.environ.get("XDG_CONFIG_HOME", str(Path.home() / ".config")))
        user_env_paths = [xdg_home / "zen" / ".env"]

    if project_env_paths is None:
        project_env_paths = [project_dir / ".env", project_dir / ".env.local"]
    project_env_paths = list(project_env_paths)

    extra = os.environ.get(ENV_FILE_VAR, "").strip()
    if extra:
        extra_path = Path(extra).expanduser()
        if not extra_path.is_absolute():
            extra_path = project_dir / extra_path
        if extra_path.exists():
            project_env_paths.append(extra_path)
        else:
            logger.warning("%s points at %s, which does not exist", ENV_FILE_VAR, extra_path)

    # Later files win over earlier ones; none wins over the process env.
    exported = set(os.environ)
    loaded: set[str] = set()
    for p in [*user_env_paths, *project_env_paths]:
        for k, v in _read_env(Path(p)).items():
            if k not in exported:
                os.environ[k] = v
                loaded.add(k)
    return loaded


__all__ = ["ENV_FILE_VAR", "load_layered_env"]
