"""Load workflow definitions from JSON or YAML files."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

import yaml
from pydantic import ValidationError

from .contracts import WorkflowDefinition
from .exceptions import WorkflowValidationError

logger = logging.getLogger(__name__)

WORKFLOW_SUFFIXES = (".json", ".yaml", ".yml")

PathLike = Union[str, Path]


def _read_document(path: Path) -> Dict[str, Any]:
    text = path.read_text(encoding="utf-8")
    if path.suffix == ".json":
        data = json.loads(text)
    else:
        data = yaml.safe_load(text)
    if not isinstance(data, dict):
        raise WorkflowValidationError([f"{path}: workflow file must contain an object"])
    return data


def parse_workflow(data: Dict[str, Any], source: str = "workflow") -> WorkflowDefinition:
    """Build a :class:`WorkflowDefinition`, reporting every schema problem."""
    try:
        return WorkflowDefinition.model_validate(data)
    except ValidationError as exc:
        errors = [
            f"{source}: {'.'.join(str(p) for p in err.get('loc', ())) or 'workflow'}: {err.get('msg')}"
            for err in exc.errors()
        ]
        raise WorkflowValidationError(errors) from exc


def find_workflow(name: str, search_paths: Iterable[PathLike] = ()) -> Optional[Path]:
    """Return the first ``<name>.json|.yaml|.yml`` found in ``search_paths``."""
    for directory in search_paths:
        base = Path(directory).expanduser()
        for suffix in WORKFLOW_SUFFIXES:
            candidate = base / f"{name}{suffix}"
            if candidate.is_file():
                return candidate
    return None


def load_workflow(
    name_or_path: PathLike, search_paths: Iterable[PathLike] = ()
) -> WorkflowDefinition:
    """Load a workflow from a file path or by name from ``search_paths``.

    Raises:
        FileNotFoundError: neither a file nor a known workflow name.
        WorkflowValidationError: the file does not describe a workflow.
    """
    path = Path(name_or_path).expanduser()
    if not path.is_file():
        found = find_workflow(str(name_or_path), search_paths)
        if found is None:
            raise FileNotFoundError(f"Workflow not found: {name_or_path}")
        path = found
    logger.debug(f"Loading workflow from {path}")
    try:
        data = _read_document(path)
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise WorkflowValidationError([f"{path}: could not parse file: {exc}"]) from exc
    return parse_workflow(data, source=str(path))


class WorkflowCatalog:
    """Cached listing of the workflow files found in a set of directories."""

    def __init__(self, search_paths: Sequence[PathLike] = ()) -> None:
        self.search_paths = [Path(p).expanduser() for p in search_paths]
        self._paths: Optional[Dict[str, Path]] = None
        self._definitions: Optional[Dict[str, WorkflowDefinition]] = None

    def _scan(self) -> Dict[str, Path]:
        found: Dict[str, Path] = {}
        for directory in self.search_paths:
            if not directory.is_dir():
                continue
            for path in sorted(directory.iterdir()):
                if path.suffix in WORKFLOW_SUFFIXES and path.is_file():
                    found.setdefault(path.stem, path)
        return found

    def paths(self, force_refresh: bool = False) -> Dict[str, Path]:
        """Map of workflow name (file stem) to file; the first directory wins."""
        if self._paths is None or force_refresh:
            self._paths = self._scan()
            self._definitions = None
            logger.info(f"Found {len(self._paths)} workflow files")
        return dict(self._paths)

    def entries(self, force_refresh: bool = False) -> Dict[str, WorkflowDefinition]:
        """Map of file stem to loaded definition; files that fail to load are skipped."""
        paths = self.paths(force_refresh)
        if self._definitions is None:
            definitions: Dict[str, WorkflowDefinition] = {}
            for name, path in paths.items():
                try:
                    definitions[name] = load_workflow(path)
                except (OSError, WorkflowValidationError) as exc:
                    logger.warning(f"Skipping workflow {name}: {exc}")
            self._definitions = definitions
        return dict(self._definitions)

    def list(self, force_refresh: bool = False) -> List[WorkflowDefinition]:
        """Return every loadable workflow in file order."""
        return list(self.entries(force_refresh).values())

    def invalidate(self) -> None:
        self._paths = None
        self._definitions = None

    def get(self, name: str) -> WorkflowDefinition:
        path = self.paths().get(name)
        if path is None:
            raise FileNotFoundError(f"Workflow not found: {name}")
        return load_workflow(path)
