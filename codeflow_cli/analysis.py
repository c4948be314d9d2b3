"""End-to-end change analysis: diffs + sources -> call graph."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Hashable, Iterable, List, Optional, Protocol, Tuple

from .diff_source import PatchParseError, parse_patch
from .graph_builder import CallGraphBuilder
from .models import CallGraph, FileChangedRanges, FileDiff, GraphBuildOptions
from .ranges import diffs_to_changed_ranges, is_parseable_file

logger = logging.getLogger(__name__)


class SourceProvider(Protocol):
    def read_file(self, file_path: str, revision: Optional[str] = None) -> str:
        ...


@dataclass
class CodeFlowResult:
    graph: CallGraph = field(default_factory=CallGraph)
    changed_files_count: int = 0
    parseable_files_count: int = 0
    skipped_files: List[str] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def has_changes(self) -> bool:
        return self.changed_files_count > 0


class CodeFlowAnalyzer:
    """Runs the diff -> ranges -> sources -> graph pipeline.

    Results for a pinned revision are memoized on the instance, keyed by the
    changed ranges, the revision and the options.  Working-tree analyses
    (``revision=None``) always recompute since file contents can change
    under the same key.
    """

    def __init__(
        self,
        source_provider: SourceProvider,
        options: Optional[GraphBuildOptions] = None,
    ) -> None:
        self.source_provider = source_provider
        self.options = options or GraphBuildOptions()
        self._builder = CallGraphBuilder(self.options)
        self._cache: Dict[Hashable, CodeFlowResult] = {}

    def analyze_patch(self, patch_text: str, revision: Optional[str] = None) -> CodeFlowResult:
        try:
            file_diffs = parse_patch(patch_text)
        except PatchParseError as exc:
            logger.error("Failed to parse diff: %s", exc)
            return CodeFlowResult(error=str(exc))
        return self.analyze(file_diffs, revision)

    def analyze(self, file_diffs: Iterable[FileDiff], revision: Optional[str] = None) -> CodeFlowResult:
        changed_files = diffs_to_changed_ranges(file_diffs)
        parseable_files = [f for f in changed_files if is_parseable_file(f.file_path)]

        key = None
        if revision is not None:
            key = (_ranges_key(parseable_files), revision, self.options)
            cached = self._cache.get(key)
            if cached is not None:
                logger.debug("Using memoized graph for %s", revision)
                return CodeFlowResult(
                    graph=cached.graph,
                    changed_files_count=len(changed_files),
                    parseable_files_count=len(parseable_files),
                    skipped_files=list(cached.skipped_files),
                )

        contents, skipped = self._load_sources(parseable_files, revision)
        graph = self._builder.build(parseable_files, contents)
        result = CodeFlowResult(
            graph=graph,
            changed_files_count=len(changed_files),
            parseable_files_count=len(parseable_files),
            skipped_files=skipped,
        )
        if key is not None:
            self._cache[key] = result
        return result

    def _load_sources(
        self,
        parseable_files: List[FileChangedRanges],
        revision: Optional[str],
    ) -> Tuple[Dict[str, str], List[str]]:
        contents: Dict[str, str] = {}
        skipped: List[str] = []
        for changed_file in parseable_files:
            try:
                contents[changed_file.file_path] = self.source_provider.read_file(
                    changed_file.file_path, revision,
                )
            except Exception as exc:
                logger.warning("Failed to read %s: %s", changed_file.file_path, exc)
                skipped.append(changed_file.file_path)
        return contents, skipped


def _ranges_key(changed_files: List[FileChangedRanges]) -> Tuple:
    return tuple(
        (f.file_path, tuple((r.start, r.end) for r in f.changed_ranges))
        for f in changed_files
    )
