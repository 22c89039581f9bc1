"""
Shell profile updater.

Keeps ``export VAR="value"`` lines in the user's shell start-up files in step
with rotated secrets. Existing assignments are rewritten in place; files that
lack one get the export appended under a marker comment. Only files that
already exist are touched.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Optional

from rotator.exceptions import ConfigurationError
from rotator.logging_config import get_logger

logger = get_logger(__name__)

SHELL_PROFILES = (".bashrc", ".bash_profile", ".zshrc", ".profile")
MARKER_COMMENT = "# Auto-updated by secret rotator"

_VAR_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def env_var_name_for(path: str) -> str:
    """Derive an environment variable name from a secret path.

    ``myapp/db`` becomes ``MYAPP_DB``.
    """
    return path.strip("/").replace("/", "_").replace("-", "_").upper()


def quote_value(value: str) -> str:
    """Double-quote a value for POSIX shells."""
    escaped = (
        value.replace("\\", "\\\\")
        .replace('"', '\\"')
        .replace("$", "\\$")
        .replace("`", "\\`")
    )
    return f'"{escaped}"'


class EnvUpdater:
    """Rewrites exports in the shell profiles under one home directory."""

    def __init__(self, home_dir: Optional[str | os.PathLike[str]] = None):
        self.home_dir = Path(home_dir) if home_dir is not None else Path.home()

    def __repr__(self) -> str:
        return f"EnvUpdater({str(self.home_dir)!r})"

    def profiles(self) -> list[Path]:
        return [self.home_dir / name for name in SHELL_PROFILES if (self.home_dir / name).is_file()]

    def update_env_var(self, var_name: str, value: str) -> list[Path]:
        """Set ``var_name`` in every existing profile and return the files changed.

        Raises:
            ConfigurationError: If ``var_name`` is not a valid shell identifier.
        """
        if not _VAR_NAME.match(var_name):
            raise ConfigurationError("env", f"'{var_name}' is not a valid variable name")

        export_line = f"export {var_name}={quote_value(value)}"
        touched: list[Path] = []
        for profile in self.profiles():
            try:
                if self._replace_in_file(profile, var_name, export_line):
                    logger.info("Updated environment variable", variable=var_name, file=profile.name)
                else:
                    self._append_to_file(profile, export_line)
                    logger.info("Appended environment variable", variable=var_name, file=profile.name)
            except OSError as e:
                logger.warning("Could not update shell profile", file=str(profile), error=str(e))
                continue
            touched.append(profile)

        if not touched:
            logger.warning("No shell profiles found or updated", home=str(self.home_dir))
        return touched

    def _replace_in_file(self, path: Path, var_name: str, export_line: str) -> bool:
        lines = path.read_text(encoding="utf-8").splitlines()
        prefixes = (f"export {var_name}=", f"{var_name}=")
        found = False
        for index, line in enumerate(lines):
            if line.strip().startswith(prefixes):
                lines[index] = export_line
                found = True
        if found:
            path.write_text("\n".join(lines) + "\n", encoding="utf-8")
        return found

    def _append_to_file(self, path: Path, export_line: str) -> None:
        content = path.read_text(encoding="utf-8")
        if content and not content.endswith("\n"):
            content += "\n"
        content += f"\n{MARKER_COMMENT}\n{export_line}\n"
        path.write_text(content, encoding="utf-8")
