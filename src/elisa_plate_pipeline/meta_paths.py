"""
Central definitions for user-editable meta file paths.

Scripts should use get_meta_paths(repo_root) so that moving files only
requires changing this module.

Layout:
  meta/
    layouts/       - per-run plate layouts: {run_id}.tsv (well → type, animal_id, standard_level, ...)
    standards/     - per-run standard concentrations: {run_id}.tsv (level → conc)
    config.yml     - assay config (curve model, Auto-QC penalties, outlier threshold, ...)
"""
from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace


def get_meta_paths(repo_root: Path) -> SimpleNamespace:
    """Return paths to user-editable meta files under repo_root/meta/."""
    root = Path(repo_root)
    meta = root / "meta"
    return SimpleNamespace(
        layouts_dir=meta / "layouts",
        standards_dir=meta / "standards",
        config=meta / "config.yml",
    )


def layout_path_for_run(repo_root: Path, run_id: str) -> Path:
    return get_meta_paths(repo_root).layouts_dir / f"{run_id}.tsv"


def standards_path_for_run(repo_root: Path, run_id: str) -> Path:
    return get_meta_paths(repo_root).standards_dir / f"{run_id}.tsv"
