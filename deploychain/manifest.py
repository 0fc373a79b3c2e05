import datetime
import json
from pathlib import Path
from typing import List

from deploychain.constants import MANIFEST_SUFFIX, MANIFESTS_DIR, PARTIAL_MANIFEST_SUFFIX
from deploychain.exceptions import PersistenceFailure
from deploychain.models import DeploymentManifest

STANDARD_MANIFEST_JSON_FORMAT = {"indent": 2, "separators": (",", ": ")}


def manifest_filepath(
    network: str,
    date: datetime.date,
    directory: Path = MANIFESTS_DIR,
    partial: bool = False,
) -> Path:
    """
    Returns <directory>/<YYYY-MM-DD>.<network>.json.

    Same-day runs against the same network share a path and overwrite each other.
    """
    suffix = PARTIAL_MANIFEST_SUFFIX if partial else MANIFEST_SUFFIX
    return Path(directory) / f"{date.isoformat()}.{network}{suffix}"


def write_manifest(
    manifest: DeploymentManifest,
    network: str,
    date: datetime.date,
    directory: Path = MANIFESTS_DIR,
    partial: bool = False,
) -> Path:
    """Writes a deployment manifest as JSON, keeping deployment order."""
    filepath = manifest_filepath(network=network, date=date, directory=directory, partial=partial)
    try:
        data = json.dumps(manifest.to_dict(), **STANDARD_MANIFEST_JSON_FORMAT)
    except (TypeError, ValueError) as e:
        raise PersistenceFailure(f"Manifest is not serializable: {e}") from e

    if filepath.exists():
        print(f"Overwriting existing manifest at {filepath}.")
    else:
        print(f"Creating new manifest at {filepath}.")

    try:
        filepath.parent.mkdir(parents=True, exist_ok=True)
        with open(filepath, "w") as file:
            file.write(data + "\n")
    except OSError as e:
        raise PersistenceFailure(f"Cannot write manifest to {filepath}: {e}") from e

    print(f"(i) Manifest written to {filepath}!")
    return filepath


def read_manifest(filepath: Path) -> DeploymentManifest:
    try:
        with open(filepath, "r") as file:
            data = json.load(file)
        return DeploymentManifest.from_dict(data)
    except (OSError, ValueError, KeyError, AttributeError) as e:
        raise PersistenceFailure(f"Cannot read manifest at {filepath}: {e}") from e


def list_manifests(directory: Path = MANIFESTS_DIR, network: str = None) -> List[Path]:
    """Returns the manifests in a directory, oldest first, optionally for a single network."""
    directory = Path(directory)
    if not directory.exists():
        return []
    pattern = f"*.{network}{MANIFEST_SUFFIX}" if network else f"*{MANIFEST_SUFFIX}"
    return sorted(
        path for path in directory.glob(pattern) if not path.name.endswith(PARTIAL_MANIFEST_SUFFIX)
    )
