import os

import pytest

from research_relay.guard.paths import (
    REASON_MISSING,
    REASON_OUTSIDE,
    REASON_TRAVERSAL,
    PathGuard,
    extract_path_references,
    is_within_root,
    validate_path,
    validate_prompt_paths,
)


def test_traversal_outside_root_rejected() -> None:
    verdict = validate_path("../../../etc/passwd", "/home/u/proj")

    assert verdict.allowed is False
    assert verdict.exists is False
    assert "traversal" in verdict.reason
    assert verdict.reason == REASON_TRAVERSAL


@pytest.mark.parametrize(
    ("path", "expected"),
    [
        ("/a/b", True),
        ("/a/b/", True),
        ("/a/b/c", True),
        ("/a/b/c/../d", True),
        ("/a/b-other", False),
        ("/a/bc/file", False),
        ("/a", False),
        ("/", False),
        ("/a/b/../c", False),
    ],
)
def test_containment_requires_separator_boundary(path: str, expected: bool) -> None:
    assert is_within_root(path, "/a/b") is expected


def test_sibling_directory_with_shared_prefix_rejected(tmp_path) -> None:
    root = tmp_path / "project"
    evil = tmp_path / "project-evil"
    root.mkdir()
    evil.mkdir()
    (evil / "secret.txt").write_text("x", encoding="utf-8")

    verdict = validate_path(str(evil / "secret.txt"), root)

    assert verdict.allowed is False
    assert verdict.reason == REASON_OUTSIDE


def test_absolute_path_inside_root_used_as_is(project_root) -> None:
    target = project_root / "src" / "auth.py"

    verdict = validate_path(str(target), project_root)

    assert verdict.allowed is True
    assert verdict.exists is True
    assert verdict.resolved == str(target)
    assert verdict.reason is None


def test_relative_path_resolved_against_root(project_root) -> None:
    verdict = validate_path("./src/../src/auth.py", project_root)

    assert verdict.allowed is True
    assert verdict.exists is True
    assert verdict.resolved == os.path.join(str(project_root), "src", "auth.py")


def test_inner_traversal_that_stays_inside_is_allowed(project_root) -> None:
    verdict = validate_path("src/../README.md", project_root)

    assert verdict.allowed is True
    assert verdict.exists is True


def test_missing_file_is_allowed_but_flagged(project_root) -> None:
    verdict = validate_path("src/nope.py", project_root)

    assert verdict.allowed is True
    assert verdict.exists is False
    assert verdict.reason == REASON_MISSING


def test_root_itself_is_allowed(project_root) -> None:
    verdict = validate_path(".", project_root)

    assert verdict.allowed is True
    assert verdict.resolved == str(project_root)


def test_extract_path_references() -> None:
    text = "Explain @src/auth.py and compare with @./lib/util-v2.ts, mail me at x"

    assert extract_path_references(text) == ["src/auth.py", "./lib/util-v2.ts"]
    assert extract_path_references("no references here") == []


def test_batch_reports_only_disallowed_as_invalid(project_root) -> None:
    batch = validate_prompt_paths("Look at @src/auth.py, @missing.py and @../outside.txt", project_root)

    assert batch.all_valid is False
    assert [verdict.input for verdict in batch.results] == ["src/auth.py", "missing.py", "../outside.txt"]
    assert [verdict.input for verdict in batch.invalid] == ["../outside.txt"]


def test_batch_without_references_is_valid(project_root) -> None:
    batch = PathGuard(project_root).validate_batch("What does this project do?")

    assert batch.all_valid is True
    assert batch.results == []


def test_guard_normalizes_root(project_root) -> None:
    guard = PathGuard(str(project_root) + os.sep + "src" + os.sep + "..")

    assert guard.root == str(project_root)
    assert [verdict.allowed for verdict in guard.validate_many(["README.md", "/etc/hosts"])] == [True, False]
    assert guard.validate("README.md").as_dict() == {
        "input": "README.md",
        "resolved": str(project_root / "README.md"),
        "exists": True,
        "allowed": True,
    }
