from pipeline.db.service.records import (
    fetch_version,
    save_version_filesize,
    fetch_repository,
    get_or_create_repository,
    mark_repository_downloaded,
)

__all__ = [
    "fetch_version",
    "save_version_filesize",
    "fetch_repository",
    "get_or_create_repository",
    "mark_repository_downloaded",
]
