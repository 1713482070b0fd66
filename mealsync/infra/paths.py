from pathlib import Path

from mealsync.utilities.config import DATA_DIR as _CONFIGURED_DATA_DIR

# Centralized paths for local store files (single source of truth)
DATA_DIR = Path(_CONFIGURED_DATA_DIR).resolve()
TOMBSTONES = '_tombstones'
NOTIFICATION_SLOTS = '_notification_slots'


def table_file(data_dir: Path, collection: str) -> Path:
    return Path(data_dir) / f'{collection}.json'


def quarantine_file(data_dir: Path, collection: str) -> Path:
    return Path(data_dir) / f'{collection}.quarantine.json'


__all__ = ['DATA_DIR', 'TOMBSTONES', 'NOTIFICATION_SLOTS', 'table_file', 'quarantine_file']
