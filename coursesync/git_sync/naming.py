"""Deterministic naming for checkouts and their backups."""

import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Union
from urllib.parse import urlsplit

_NON_SLUG = re.compile(r"[^a-zA-Z0-9_-]+")


def slugify(value: Optional[str]) -> Optional[str]:
    """Lower-case ``value`` and replace anything outside ``[A-Za-z0-9_-]`` with dashes."""
    if not value:
        return None

    slug = str(value).strip()
    if slug.endswith(".git"):
        slug = slug[:-len(".git")]
    slug = _NON_SLUG.sub("-", slug).strip("-").lower()
    return slug or None


def _last_segment(value: str) -> Optional[str]:
    parts = [part for part in value.split("/") if part]
    return parts[-1] if parts else None


def _name_from_url(remote_url: Optional[str]) -> Optional[str]:
    if not remote_url:
        return None

    try:
        pathname = urlsplit(remote_url).path if "://" in remote_url else remote_url
    except ValueError:
        pathname = remote_url
    return slugify(_last_segment(pathname))


def derive_repository_directory_name(
    full_path: Optional[str] = None,
    path: Optional[str] = None,
    remote_url: Optional[str] = None,
    course_id: Optional[str] = None,
    member_id: Optional[str] = None,
    submission_group_id: Optional[str] = None
) -> str:
    """
    Pick the directory name for a student repository.

    The first usable slug wins: last segment of ``full_path``, then ``path``,
    then the last path segment of ``remote_url``. Without any of those the name
    is ``<course>-<member>``.
    """
    candidates = (
        slugify(_last_segment(full_path)) if full_path else None,
        slugify(path),
        _name_from_url(remote_url),
    )
    for candidate in candidates:
        if candidate:
            return candidate

    course_slug = slugify(course_id) or "course"
    member_slug = slugify(member_id) or slugify(submission_group_id) or "member"
    return f"{course_slug}-{member_slug}"


def build_student_repo_root(workspace_root: Union[str, Path], repo_name: str) -> Path:
    return Path(workspace_root) / "students" / repo_name


def build_upstream_template_url(provider_url: str, full_path: str) -> str:
    """URL of the course's student template repository, ``<provider>/<full_path>/student-template.git``."""
    provider = provider_url.rstrip("/")
    project = full_path.strip("/")
    return f"{provider}/{project}/student-template.git"


def backup_timestamp(when: Optional[datetime] = None) -> str:
    """ISO-8601 UTC timestamp with ``:`` and ``.`` replaced so it is valid in file names."""
    when = when or datetime.now(timezone.utc)
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    iso = when.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")
    return iso.replace(":", "-").replace(".", "-")


def backup_path_for(backups_root: Union[str, Path], repo_name: str, when: Optional[datetime] = None) -> Path:
    """
    Return a backup path for ``repo_name`` that does not exist yet.

    Two backups taken within the same millisecond get ``_2``, ``_3``, ...
    appended instead of overwriting each other.
    """
    base = Path(backups_root) / f"{slugify(repo_name) or 'repository'}_{backup_timestamp(when)}"
    candidate = base
    counter = 2
    while candidate.exists():
        candidate = base.with_name(f"{base.name}_{counter}")
        counter += 1
    return candidate
