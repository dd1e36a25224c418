"""Tests for aigit.fingerprint: patch ids stable under diff noise."""
from __future__ import annotations

from aigit.fingerprint import compute_patch_id

DIFF_A = """diff --git a/a.txt b/a.txt
index 1111111..2222222 100644
--- a/a.txt
+++ b/a.txt
@@ -1 +1 @@
-old
+new
"""

DIFF_B = """diff --git a/b.txt b/b.txt
index 3333333..4444444 100644
--- a/b.txt
+++ b/b.txt
@@ -3,0 +4 @@
+added line
"""


def _binary(blobs):
    return (
        "diff --git a/logo.png b/logo.png\n"
        f"index {blobs}\n"
        "Binary files a/logo.png and b/logo.png differ\n"
    )


def _mode(old, new):
    return f"diff --git a/run.sh b/run.sh\nold mode {old}\nnew mode {new}\n"


class TestPatchId:
    def test_hex_digest(self):
        pid = compute_patch_id(DIFF_A)
        assert len(pid) == 64
        int(pid, 16)

    def test_deterministic(self):
        assert compute_patch_id(DIFF_A) == compute_patch_id(DIFF_A)

    def test_file_order_irrelevant(self):
        assert compute_patch_id(DIFF_A + DIFF_B) == compute_patch_id(DIFF_B + DIFF_A)

    def test_line_numbers_and_index_irrelevant(self):
        moved = DIFF_A.replace("@@ -1 +1 @@", "@@ -10 +10 @@").replace("1111111..2222222", "aaaaaaa..bbbbbbb")
        assert compute_patch_id(moved) == compute_patch_id(DIFF_A)

    def test_whitespace_in_changed_lines_irrelevant(self):
        spaced = DIFF_A.replace("+new", "+  new   ")
        assert compute_patch_id(spaced) == compute_patch_id(DIFF_A)

    def test_crlf_irrelevant(self):
        assert compute_patch_id(DIFF_A.replace("\n", "\r\n")) == compute_patch_id(DIFF_A)

    def test_content_change_detected(self):
        assert compute_patch_id(DIFF_A.replace("+new", "+newer")) != compute_patch_id(DIFF_A)

    def test_direction_matters(self):
        flipped = DIFF_A.replace("-old", "-TMP").replace("+new", "-new").replace("-TMP", "+old")
        assert compute_patch_id(flipped) != compute_patch_id(DIFF_A)

    def test_leading_noise_ignored(self):
        assert compute_patch_id("\n" + DIFF_A) == compute_patch_id(DIFF_A)


class TestHunklessSections:
    def test_binary_contents_distinguished(self):
        assert compute_patch_id(_binary("1111111..2222222")) != compute_patch_id(_binary("1111111..3333333"))

    def test_binary_same_blobs_stable(self):
        assert compute_patch_id(_binary("1111111..2222222 100644")) == compute_patch_id(_binary("1111111..2222222"))

    def test_mode_flip_direction_matters(self):
        assert compute_patch_id(_mode("100644", "100755")) != compute_patch_id(_mode("100755", "100644"))

    def test_mode_change_alongside_content(self):
        with_mode = DIFF_A.replace("index 1111111..2222222 100644\n", "old mode 100644\nnew mode 100755\n")
        assert compute_patch_id(with_mode) != compute_patch_id(DIFF_A)

    def test_new_and_deleted_file_differ(self):
        created = "diff --git a/e b/e\nnew file mode 100644\nindex 0000000..e69de29\n"
        deleted = "diff --git a/e b/e\ndeleted file mode 100644\nindex e69de29..0000000\n"
        assert compute_patch_id(created) != compute_patch_id(deleted)
