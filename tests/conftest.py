"""Pytest configuration and fixtures for CodeFlow CLI tests."""

import difflib
import subprocess
from pathlib import Path
from typing import Callable

import pytest

from codeflow_cli.parser import TreeSitterParser


@pytest.fixture(autouse=True)
def _isolated_config(tmp_path: Path, monkeypatch):
    """Point the config file at a temp location so tests never read ~/.codeflow."""
    monkeypatch.setattr("codeflow_cli.config.CONFIG_FILE", tmp_path / "codeflow-home" / "config.toml")


@pytest.fixture
def ts_parser() -> TreeSitterParser:
    return TreeSitterParser()


@pytest.fixture
def sample_ts_code() -> str:
    """Sample TypeScript module; line numbers matter to the tests."""
    return '''import { formatPrice } from "./format";

export function addItem(cart: Cart, item: Item): Cart {
  const next = { ...cart, items: [...cart.items, item] };
  return recalculate(next);
}

export function recalculate(cart: Cart): Cart {
  const total = cart.items.reduce((sum, i) => sum + i.price, 0);
  return { ...cart, total };
}

export class CartView {
  render(cart: Cart): string {
    return this.header() + formatPrice(cart.total);
  }

  header(): string {
    return "Cart";
  }
}

export const checkout = (cart: Cart) => {
  addItem(cart, { price: 0 });
  return logEvent("checkout");
};
'''


@pytest.fixture
def sample_ts_code_before(sample_ts_code: str) -> str:
    """The sample module before ``addItem`` started calling ``recalculate``."""
    return sample_ts_code.replace("  return recalculate(next);", "  return next;")


@pytest.fixture
def make_patch() -> Callable[[str, str, str], str]:
    """Build a unified diff for *path* between two versions of its content."""

    def _make(path: str, before: str, after: str) -> str:
        diff = difflib.unified_diff(
            before.splitlines(keepends=True),
            after.splitlines(keepends=True),
            fromfile=f"a/{path}",
            tofile=f"b/{path}",
        )
        return "".join(diff)

    return _make


@pytest.fixture
def sample_project(tmp_path: Path, sample_ts_code: str, sample_ts_code_before: str, make_patch) -> Path:
    """Source tree plus ``changes.diff`` describing the edit to ``src/cart.ts``."""
    root = tmp_path / "project"
    (root / "src").mkdir(parents=True)
    (root / "src" / "cart.ts").write_text(sample_ts_code, encoding="utf-8")
    (root / "changes.diff").write_text(
        make_patch("src/cart.ts", sample_ts_code_before, sample_ts_code), encoding="utf-8",
    )
    return root


def _git(cwd: Path, *args: str) -> None:
    subprocess.run(
        ["git", "-c", "user.email=tests@example.com", "-c", "user.name=Tests", *args],
        cwd=cwd,
        check=True,
        capture_output=True,
    )


@pytest.fixture
def git_repo(tmp_path: Path, sample_ts_code: str, sample_ts_code_before: str) -> Path:
    """Git repo whose HEAD holds the "before" sample and the working tree the "after"."""
    repo = tmp_path / "repo"
    (repo / "src").mkdir(parents=True)
    _git(repo, "init", "-q")
    (repo / "src" / "cart.ts").write_text(sample_ts_code_before, encoding="utf-8")
    _git(repo, "add", ".")
    _git(repo, "commit", "-q", "-m", "initial")
    (repo / "src" / "cart.ts").write_text(sample_ts_code, encoding="utf-8")
    return repo


@pytest.fixture
def commit_all() -> Callable[[Path, str], None]:
    def _commit(repo: Path, message: str) -> None:
        _git(repo, "add", ".")
        _git(repo, "commit", "-q", "-m", message)

    return _commit
