"""Tests for the unified diff parser."""

from __future__ import annotations

from leakwatch.repo.git import AddedChunk, is_zero_hash, parse_added_chunks

MULTI_HUNK = """\
diff --git a/app/settings.py b/app/settings.py
index 1111111..2222222 100644
--- a/app/settings.py
+++ b/app/settings.py
@@ -3 +3,2 @@ DEBUG = False
-TOKEN = ""
+TOKEN = "abc"
+USER = "root"
@@ -10,0 +12 @@ def load():
+    return TOKEN
diff --git a/new.txt b/new.txt
new file mode 100644
index 0000000..3333333
--- /dev/null
+++ b/new.txt
@@ -0,0 +1,2 @@
+first
+second
\\ No newline at end of file
"""


def test_multiple_hunks_and_files():
    chunks = list(parse_added_chunks(MULTI_HUNK))
    assert chunks == [
        AddedChunk("app/settings.py", 3, 'TOKEN = "abc"\nUSER = "root"\n'),
        AddedChunk("app/settings.py", 12, "    return TOKEN\n"),
        AddedChunk("new.txt", 1, "first\nsecond\n"),
    ]


def test_removed_lines_split_chunks():
    patch = """\
diff --git a/a.txt b/a.txt
--- a/a.txt
+++ b/a.txt
@@ -1,3 +1,2 @@
+one
-two
+three
"""
    chunks = list(parse_added_chunks(patch))
    assert [(c.line_begin, c.content) for c in chunks] == [(1, "one\n"), (2, "three\n")]


def test_deleted_file_produces_nothing():
    patch = """\
diff --git a/gone.txt b/gone.txt
deleted file mode 100644
--- a/gone.txt
+++ /dev/null
@@ -1 +0,0 @@
-bye
"""
    assert list(parse_added_chunks(patch)) == []


def test_binary_file_produces_nothing():
    patch = """\
diff --git a/img.png b/img.png
new file mode 100644
index 0000000..1234567
Binary files /dev/null and b/img.png differ
diff --git a/ok.txt b/ok.txt
--- a/ok.txt
+++ b/ok.txt
@@ -0,0 +1 @@
+fine
"""
    chunks = list(parse_added_chunks(patch))
    assert chunks == [AddedChunk("ok.txt", 1, "fine\n")]


def test_added_lines_that_look_like_headers():
    patch = """\
diff --git a/notes.md b/notes.md
--- a/notes.md
+++ b/notes.md
@@ -0,0 +1,2 @@
++++ not a header
+@@ neither @@
"""
    (chunk,) = parse_added_chunks(patch)
    assert chunk.file_path == "notes.md"
    assert chunk.content == "+++ not a header\n@@ neither @@\n"


def test_quoted_path_is_unquoted():
    patch = """\
diff --git "a/dir/tab\\there.txt" "b/dir/tab\\there.txt"
--- "a/dir/tab\\there.txt"
+++ "b/dir/tab\\there.txt"
@@ -0,0 +1 @@
+x
"""
    (chunk,) = parse_added_chunks(patch)
    assert chunk.file_path == "dir/tab\there.txt"


def test_quoted_octal_utf8_path():
    patch = (
        'diff --git "a/caf\\303\\251.txt" "b/caf\\303\\251.txt"\n'
        '+++ "b/caf\\303\\251.txt"\n'
        "@@ -0,0 +1 @@\n"
        "+x\n"
    )
    (chunk,) = parse_added_chunks(patch)
    assert chunk.file_path == "café.txt"


def test_empty_patch():
    assert list(parse_added_chunks("")) == []


def test_is_zero_hash():
    assert is_zero_hash("0" * 40)
    assert not is_zero_hash("0" * 39 + "1")
