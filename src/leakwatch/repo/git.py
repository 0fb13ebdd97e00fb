"""Git plumbing - subprocess wrapper around the git CLI and a diff parser.

Only the handful of read-only commands the scanner needs are wrapped:
reference listing, date-ordered rev-list, commit metadata and zero-context
unified diffs. Output is decoded as UTF-8 with replacement so a stray
binary byte in a patch never aborts a scan.
"""

from __future__ import annotations

import logging
import os
import re
import subprocess  # nosec B404
from collections.abc import Iterator
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from leakwatch.errors import GitCommandError, RepoError

logger = logging.getLogger(__name__)

ZERO_HASH_RE = re.compile(r"^0+$")

_HUNK_RE = re.compile(r"^@@+ -\d+(?:,\d+)? \+(\d+)(?:,\d+)? @@")

_DIFF_ARGS = [
    "-c",
    "core.quotePath=false",
    "diff",
    "--no-color",
    "--no-ext-diff",
    "--no-textconv",
    "--ignore-submodules",
    "--src-prefix=a/",
    "--dst-prefix=b/",
    "-M",
    "-U0",
]

# Max seconds for a single git invocation
_GIT_TIMEOUT = 600

_ESCAPES = {
    "a": b"\a",
    "b": b"\b",
    "f": b"\f",
    "n": b"\n",
    "r": b"\r",
    "t": b"\t",
    "v": b"\v",
    '"': b'"',
    "\\": b"\\",
}


@dataclass(frozen=True)
class CommitInfo:
    """Metadata of a single commit object."""

    hash: str
    parents: tuple[str, ...]
    author: str
    author_email: str
    authored_at: datetime
    committed_at: datetime


@dataclass(frozen=True)
class AddedChunk:
    """A contiguous run of added lines in one file."""

    file_path: str
    line_begin: int
    content: str


class GitRepository:
    """Handle on a local clone, driven through the git CLI."""

    def __init__(self, path: Path) -> None:
        self.path = path

    @classmethod
    def open(cls, path: str | Path) -> GitRepository:
        """Open the repository at ``path`` or raise RepoError."""
        path = Path(path)
        if not path.is_dir():
            raise RepoError(f"Repository path does not exist: {path}")
        repo = cls(path)
        try:
            repo.run("rev-parse", "--git-dir")
        except GitCommandError as e:
            raise RepoError(f"Not a git repository: {path}: {e}") from e
        return repo

    def run(self, *args: str) -> str:
        """Run a git command in the repository and return its stdout."""
        cmd = ["git", *args]
        env = dict(os.environ, LC_ALL="C", GIT_TERMINAL_PROMPT="0")
        try:
            result = subprocess.run(  # nosec B603, B607
                cmd,
                cwd=str(self.path),
                capture_output=True,
                env=env,
                timeout=_GIT_TIMEOUT,
            )
        except subprocess.TimeoutExpired as e:
            raise GitCommandError(
                list(args), -1, f"timed out after {e.timeout}s"
            ) from e
        except FileNotFoundError as e:
            raise GitCommandError(list(args), -1, "git executable not found") from e

        if result.returncode != 0:
            raise GitCommandError(
                list(args),
                result.returncode,
                result.stderr.decode("utf-8", errors="replace"),
            )
        return result.stdout.decode("utf-8", errors="replace")

    def references(self) -> list[tuple[str, str]]:
        """Return (hash, refname) for every reference in the repository."""
        out = self.run("for-each-ref", "--format=%(objectname) %(refname)")
        refs: list[tuple[str, str]] = []
        for line in out.splitlines():
            line = line.strip()
            if not line:
                continue
            ref_hash, _, name = line.partition(" ")
            refs.append((ref_hash, name))
        return refs

    def rev_list(self, max_count: int | None = None) -> list[str]:
        """Commits reachable from all refs and remotes, newest first by date."""
        args = ["rev-list", "--all", "--remotes", "--date-order"]
        if max_count is not None:
            args.append(f"--max-count={max_count}")
        out = self.run(*args)
        return [h.strip() for h in out.splitlines() if h.strip()]

    def commit(self, commit_hash: str) -> CommitInfo:
        """Resolve a commit hash to its metadata."""
        out = self.run(
            "log",
            "-1",
            "--no-show-signature",
            "--format=%H%x00%P%x00%an%x00%ae%x00%at%x00%ct",
            f"{commit_hash}^{{commit}}",
        )
        fields = out.rstrip("\n").split("\x00")
        if len(fields) != 6:
            raise GitCommandError(
                ["log", commit_hash], 0, f"unexpected output: {out!r}"
            )
        full_hash, parents, author, email, authored, committed = fields
        return CommitInfo(
            hash=full_hash,
            parents=tuple(parents.split()),
            author=author,
            author_email=email,
            authored_at=datetime.fromtimestamp(int(authored), tz=timezone.utc),
            committed_at=datetime.fromtimestamp(int(committed), tz=timezone.utc),
        )

    def empty_tree(self) -> str:
        """Hash of the empty tree in this repository's object format."""
        out = self.run("hash-object", "-t", "tree", "/dev/null")
        return out.strip()

    def added_chunks(self, old: str, new: str) -> Iterator[AddedChunk]:
        """Added chunks of the patch that turns ``old`` into ``new``."""
        out = self.run(*_DIFF_ARGS, old, new, "--")
        yield from parse_added_chunks(out)


def is_zero_hash(ref_hash: str) -> bool:
    return bool(ZERO_HASH_RE.match(ref_hash))


def parse_added_chunks(patch: str) -> Iterator[AddedChunk]:
    """Parse a zero-context unified diff into its added chunks.

    Binary patches and files without a new-side path (deletions) produce
    nothing. Removed and context lines split chunks and are never emitted.
    """
    file_path: str | None = None
    binary = False
    in_hunk = False
    cursor = 0
    chunk_start = 0
    chunk_lines: list[str] = []

    def flush() -> Iterator[AddedChunk]:
        if chunk_lines and file_path is not None and not binary:
            yield AddedChunk(
                file_path=file_path,
                line_begin=chunk_start,
                content="\n".join(chunk_lines) + "\n",
            )
        chunk_lines.clear()

    for line in patch.split("\n"):
        if line.startswith("diff --git "):
            yield from flush()
            file_path = None
            binary = False
            in_hunk = False
            continue

        if line.startswith("@@"):
            yield from flush()
            m = _HUNK_RE.match(line)
            if m is None:
                in_hunk = False
                continue
            in_hunk = True
            cursor = int(m.group(1))
            continue

        if not in_hunk:
            if line.startswith("+++ "):
                file_path = _parse_new_path(line[4:])
            elif line.startswith("Binary files ") or line == "GIT binary patch":
                binary = True
            continue

        if line.startswith("+"):
            if not chunk_lines:
                chunk_start = cursor
            chunk_lines.append(line[1:])
            cursor += 1
        elif line.startswith("\\"):
            # "\ No newline at end of file"
            continue
        elif line.startswith(" "):
            yield from flush()
            cursor += 1
        else:
            yield from flush()

    yield from flush()


def _parse_new_path(target: str) -> str | None:
    target = target.rstrip("\t")
    if target == "/dev/null":
        return None
    if target.startswith('"') and target.endswith('"'):
        target = _unquote(target[1:-1])
    if target.startswith("b/"):
        target = target[2:]
    return target or None


def _unquote(quoted: str) -> str:
    """Undo git's C-style path quoting (octal escapes are UTF-8 bytes)."""
    raw = bytearray()
    i = 0
    while i < len(quoted):
        ch = quoted[i]
        if ch == "\\" and i + 1 < len(quoted):
            nxt = quoted[i + 1]
            if nxt in _ESCAPES:
                raw += _ESCAPES[nxt]
                i += 2
                continue
            if nxt.isdigit() and i + 4 <= len(quoted):
                raw.append(int(quoted[i + 1 : i + 4], 8))
                i += 4
                continue
        raw += ch.encode("utf-8")
        i += 1
    return raw.decode("utf-8", errors="replace")
