"""Diff and source providers: unified-diff parsing and git access.

These adapters sit outside the pure graph pipeline.  They turn a unified
diff into ``FileDiff`` objects and read file contents either from a git
revision, the git working tree, or a plain directory.
"""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import List, Optional, Sequence

from unidiff import PatchedFile, PatchSet
from unidiff.errors import UnidiffParseError

from .models import FileDiff, Hunk

logger = logging.getLogger(__name__)

# fixed a/ b/ header prefixes regardless of diff.noprefix or diff.mnemonicPrefix
_PREFIX_ARGS = ("--src-prefix=a/", "--dst-prefix=b/")


class PatchParseError(ValueError):
    """Raised when a patch cannot be parsed as a unified diff."""


class GitCommandError(RuntimeError):
    """Raised when a git subprocess exits with a non-zero status."""

    def __init__(self, args: Sequence[str], returncode: int, stderr: str) -> None:
        self.args_list = list(args)
        self.returncode = returncode
        self.stderr = stderr.strip()
        super().__init__(f"git {' '.join(args)} failed ({returncode}): {self.stderr}")


def parse_patch(patch_text: str) -> List[FileDiff]:
    """Parse *patch_text* into per-file runs of added lines.

    Each run of consecutive added lines in a hunk becomes one ``Hunk`` whose
    ``start_line`` is the post-image line number of the first added line.
    Binary files and pure deletions produce no hunks.  Paths are kept as
    written in the patch headers, ``a/``/``b/`` prefixes included.

    Raises:
        PatchParseError: if the text is not a well-formed unified diff.
    """
    if not patch_text.strip():
        return []
    try:
        patch = PatchSet.from_string(patch_text)
    except UnidiffParseError as exc:
        raise PatchParseError(f"Malformed patch: {exc}") from exc

    file_diffs: List[FileDiff] = []
    for patched_file in patch:
        if patched_file.is_binary_file:
            continue
        hunks: List[Hunk] = []
        for hunk in patched_file:
            run_start: Optional[int] = None
            run_length = 0
            for line in hunk:
                if line.is_added and line.target_line_no is not None:
                    if run_start is None:
                        run_start = line.target_line_no
                        run_length = 0
                    run_length += 1
                elif line.is_context and run_start is not None:
                    hunks.append(Hunk(start_line=run_start, line_count=run_length))
                    run_start = None
            if run_start is not None:
                hunks.append(Hunk(start_line=run_start, line_count=run_length))
        file_diffs.append(FileDiff(file_path=_post_image_path(patched_file), hunks=hunks))
    return file_diffs


def _post_image_path(patched_file: PatchedFile) -> str:
    """Header path after the change; the old path for deleted files.

    The ``a/``/``b/`` prefix is kept; ``diffs_to_changed_ranges`` strips it.
    """
    path = patched_file.target_file
    if path == "/dev/null":
        path = patched_file.source_file
    return path


class GitRepository:
    """Minimal git access for diffs and file contents at a revision."""

    def __init__(self, repo_path: Path, git_binary: str = "git") -> None:
        self.repo_path = Path(repo_path)
        self.git_binary = git_binary

    def _run(self, *args: str) -> str:
        logger.debug("Running git %s in %s", " ".join(args), self.repo_path)
        try:
            result = subprocess.run(
                [self.git_binary, *args],
                cwd=self.repo_path,
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
            )
        except FileNotFoundError as exc:
            raise GitCommandError(args, 127, str(exc)) from exc
        if result.returncode != 0:
            raise GitCommandError(args, result.returncode, result.stderr)
        return result.stdout

    def working_diff(self, staged: bool) -> str:
        args = ["diff", "--no-color", "--no-ext-diff", *_PREFIX_ARGS]
        if staged:
            args.append("--cached")
        return self._run(*args)

    def working_patch(self) -> str:
        """Staged and unstaged changes joined into one patch."""
        patches = [p for p in (self.working_diff(staged=True), self.working_diff(staged=False)) if p]
        return "".join(patches)

    def commit_diff(self, commit: str) -> str:
        return self._run(
            "show", "--no-color", "--no-ext-diff", *_PREFIX_ARGS, "--format=", "--patch", commit,
        )

    def read_file(self, file_path: str, revision: Optional[str] = None) -> str:
        if revision is None:
            return (self.repo_path / file_path).read_text(encoding="utf-8", errors="replace")
        return self._run("show", f"{revision}:{file_path}")


class DirectorySource:
    """Reads files from a plain directory; the revision is ignored."""

    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    def read_file(self, file_path: str, revision: Optional[str] = None) -> str:
        return (self.root / file_path).read_text(encoding="utf-8", errors="replace")
