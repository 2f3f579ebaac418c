"""
Profile Resolver - Which project are we working in?

Each project gets its own memory database (a "profile"). The profile is
picked once at startup:
1. ECLIPSE_PROFILE override (sanitized)
2. The working directory name, if it looks like a project
3. "global" otherwise

Examples:
    /home/dev/my-api (has pyproject.toml)  → "my-api"
    /tmp                                    → "global"
    ECLIPSE_PROFILE="Client Work!"          → "client-work"
"""

import re
from pathlib import Path
from typing import Optional

GLOBAL_PROFILE = "global"
MAX_PROFILE_LENGTH = 64

PROJECT_MARKERS = (
    ".git",
    ".eclipse",
    "package.json",
    "pyproject.toml",
    "setup.py",
    "requirements.txt",
    "Cargo.toml",
    "go.mod",
    "pom.xml",
    "build.gradle",
    "composer.json",
    "Gemfile",
)

_UNSAFE_CHARS = re.compile(r"[^a-z0-9_-]+")


def sanitize_profile(name: str) -> str:
    """Turn an arbitrary name into a safe directory name.

    Lowercases, replaces anything outside [a-z0-9_-] with '-',
    trims leading/trailing dashes and caps the length. Empty → "global".
    """
    cleaned = _UNSAFE_CHARS.sub("-", name.strip().lower()).strip("-")
    cleaned = cleaned[:MAX_PROFILE_LENGTH].rstrip("-")
    return cleaned or GLOBAL_PROFILE


def is_project_dir(path: Path) -> bool:
    return any((path / marker).exists() for marker in PROJECT_MARKERS)


def resolve_profile(override: Optional[str], working_dir: Path) -> str:
    """Pick the profile for this process."""
    if override and override.strip():
        return sanitize_profile(override)

    working_dir = Path(working_dir)
    if is_project_dir(working_dir):
        return sanitize_profile(working_dir.resolve().name)

    return GLOBAL_PROFILE
