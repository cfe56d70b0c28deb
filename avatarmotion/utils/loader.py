from __future__ import annotations
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, Dict, Optional

from tqdm import tqdm

from .data_types import LoadedAsset
from .diagnostics import Diagnostics, ensure_diagnostics


class LoadResult:
    """Outcome of loading a batch of sources; both dicts keep the declared order."""
    def __init__(self):
        self.successes: Dict[str, LoadedAsset] = {}
        self.failures: Dict[str, str] = {}

    def __repr__(self):
        return f"LoadResult(loaded={len(self.successes)}, failed={len(self.failures)})"


def load_sources(
    sources: Dict[str, str],
    load_fn: Callable[[str], LoadedAsset],
    max_workers: int = 4,
    diagnostics: Optional[Diagnostics] = None,
    progress: bool = False,
) -> LoadResult:
    """
    Load every source in parallel and wait for all of them.

    A failing load never cancels its siblings: its error is recorded and the
    rest are still collected.
    """
    diagnostics = ensure_diagnostics(diagnostics)
    result = LoadResult()
    if not sources:
        return result

    outcomes = {}
    with ThreadPoolExecutor(max_workers=max(1, min(len(sources), max_workers))) as executor:
        futures = {executor.submit(load_fn, location): name for name, location in sources.items()}
        completed = as_completed(futures)
        if progress:
            completed = tqdm(completed, total=len(futures), desc="Loading animations", unit="clip")
        for future in completed:
            name = futures[future]
            try:
                outcomes[name] = (future.result(), None)
            except Exception as e:
                outcomes[name] = (None, e)

    for name in sources:
        asset, error = outcomes[name]
        if error is None:
            result.successes[name] = asset
        else:
            result.failures[name] = str(error)
            diagnostics.error(
                "clip_load_failed",
                f"Failed to load {name}: {error}",
                animation=name,
                location=sources[name],
            )
    return result
