"""Tests for the status report state machine."""

from __future__ import annotations

import unittest
from pathlib import Path

from git_smart_status.models import Bucket, ChangeType, FileType
from git_smart_status.status_parser import (
    Ahead,
    Behind,
    Blank,
    Divergence,
    Header,
    Hint,
    ParseState,
    Record,
    StatusParser,
    classify_line,
    normalize_label,
    parse_status,
    unquote_c_style,
)

REPO = Path("/work/repo")


class ClassifyLineTests(unittest.TestCase):
    def test_blank_lines(self) -> None:
        self.assertEqual(classify_line("   "), Blank())

    def test_headers(self) -> None:
        self.assertEqual(classify_line("Changes not staged for commit:"), Header(ParseState.NOT_STAGED))
        self.assertEqual(classify_line("Untracked files:"), Header(ParseState.UNTRACKED))
        self.assertEqual(classify_line("Changes to be committed:"), Header(ParseState.STAGED))
        self.assertEqual(classify_line("Unmerged paths:"), Header(ParseState.CONFLICTS))
        self.assertEqual(classify_line("nothing to commit, working tree clean"), Header(ParseState.IDLE))
        self.assertEqual(classify_line('no changes added to commit (use "git add")'), Header(ParseState.IDLE))
        self.assertEqual(
            classify_line("Untracked files not listed (use -u option to show untracked files)"),
            Header(ParseState.IDLE),
        )

    def test_tracking_lines(self) -> None:
        self.assertEqual(classify_line("Your branch is behind 'origin/master' by 2 commits."), Behind(2))
        self.assertEqual(classify_line("Your branch is ahead of 'origin/main' by 1 commit."), Ahead(1))
        self.assertEqual(
            classify_line("and have 3 and 5 different commits each, respectively."),
            Divergence(ahead=3, behind=5),
        )

    def test_hints(self) -> None:
        self.assertIsInstance(classify_line('  (use "git add <file>..." to update what will be committed)'), Hint)
        self.assertIsInstance(
            classify_line('nothing added to commit but untracked files present (use "git add" to track)'), Hint
        )
        self.assertIsInstance(classify_line('(fix conflicts and run "git commit")'), Hint)

    def test_records_strip_verbs(self) -> None:
        self.assertEqual(classify_line("\tmodified:   src/app.cs"), Record("src/app.cs", ChangeType.MODIFIED))
        self.assertEqual(classify_line("new file:   a.txt"), Record("a.txt", ChangeType.NEW))
        self.assertEqual(classify_line("deleted:    old.txt"), Record("old.txt", ChangeType.DELETED))
        self.assertEqual(classify_line("both modified:   x.cs"), Record("x.cs", ChangeType.BOTH_MODIFIED))
        self.assertEqual(classify_line("renamed:    a.cs -> b.cs"), Record("b.cs", ChangeType.RENAMED))
        self.assertEqual(classify_line("tools/build.ps1"), Record("tools/build.ps1", ChangeType.NONE))

    def test_labels_are_normalised(self) -> None:
        self.assertEqual(classify_line("modified:   src\\Lib\\Lib.csproj").label, "src/Lib/Lib.csproj")
        self.assertEqual(classify_line('"with space.txt"').label, "with space.txt")

    def test_octal_escaped_paths_are_decoded_as_utf8(self) -> None:
        self.assertEqual(classify_line(r'modified:   "Caf\303\251.cs"').label, "Caf\u00e9.cs")
        self.assertEqual(classify_line(r'"src/\346\227\245\346\234\254.txt"').label, "src/\u65e5\u672c.txt")

    def test_quoted_escapes_keep_literal_backslashes(self) -> None:
        self.assertEqual(normalize_label(r'"say \"hi\" \\ bye.txt"'), 'say "hi" \\ bye.txt')
        self.assertEqual(unquote_c_style(r"tab\there"), "tab\there")


class StatusParserTests(unittest.TestCase):
    def test_not_staged_block_yields_one_record_per_line(self) -> None:
        lines = [
            "On branch master",
            "Changes not staged for commit:",
            '  (use "git add <file>..." to update what will be committed)',
            "        modified:   one.cs",
            "        modified:   two/three.cs",
            "        deleted:    four.cs",
            "",
            'no changes added to commit (use "git add" and/or "git commit -a")',
        ]
        report = parse_status(lines, REPO)

        records = report.bucket(Bucket.NOT_STAGED)
        self.assertEqual([entry.label for entry in records], ["one.cs", "two/three.cs", "four.cs"])
        self.assertEqual([entry.change_type for entry in records], [ChangeType.MODIFIED, ChangeType.MODIFIED, ChangeType.DELETED])
        self.assertEqual(records[1].path, REPO / "two/three.cs")
        self.assertTrue(all(entry.bucket is Bucket.NOT_STAGED for entry in records))

    def test_behind_line_sets_behind_count(self) -> None:
        report = parse_status(["Your branch is behind 'origin/master' by 2 commits."], REPO)

        self.assertEqual(report.behind, 2)
        self.assertTrue(report.is_behind)
        self.assertEqual(report.ahead, 0)

    def test_ahead_line_sets_unpushed_count(self) -> None:
        report = parse_status(["Your branch is ahead of 'origin/master' by 4 commits."], REPO)

        self.assertEqual(report.ahead, 4)
        self.assertTrue(report.has_unpushed)

    def test_diverged_sets_both_counts(self) -> None:
        report = parse_status(
            [
                "Your branch and 'origin/master' have diverged,",
                "and have 1 and 7 different commits each, respectively.",
            ],
            REPO,
        )

        self.assertEqual((report.ahead, report.behind), (1, 7))

    def test_worked_example(self) -> None:
        report = parse_status(
            [
                "Your branch is behind 'origin/master' by 2 commits.",
                "Changes not staged for commit:",
                "        modified:   foo.csproj",
                "",
            ],
            REPO,
        )

        self.assertEqual(report.behind, 2)
        self.assertTrue(report.is_behind)
        records = report.bucket(Bucket.NOT_STAGED)
        self.assertEqual(len(records), 1)
        self.assertEqual(records[0].label, "foo.csproj")
        self.assertEqual(records[0].file_type, FileType.PROJECT)

    def test_every_section_lands_in_its_bucket(self) -> None:
        lines = [
            "On branch feature",
            "You have unmerged paths.",
            '  (fix conflicts and run "git commit")',
            "",
            "Changes to be committed:",
            "        new file:   added.cs",
            "",
            "Unmerged paths:",
            '  (use "git add <file>..." to mark resolution)',
            "        both modified:   clash.cs",
            "",
            "Untracked files:",
            '  (use "git add <file>..." to include in what will be committed)',
            "        Lib.nuspec.txt",
            "        notes.md",
            "",
        ]
        report = parse_status(lines, REPO)

        self.assertEqual([e.label for e in report.bucket(Bucket.STAGED)], ["added.cs"])
        self.assertEqual([e.label for e in report.bucket(Bucket.CONFLICTED)], ["clash.cs"])
        self.assertEqual([e.label for e in report.bucket(Bucket.UNTRACKED)], ["Lib.nuspec.txt", "notes.md"])
        self.assertEqual(report.bucket(Bucket.UNTRACKED)[0].file_type, FileType.TEMP)
        self.assertEqual(report.bucket(Bucket.UNTRACKED)[1].file_type, FileType.SOURCE)
        self.assertEqual(report.bucket(Bucket.NOT_STAGED), [])

    def test_idle_lines_are_not_records(self) -> None:
        report = parse_status(
            ["On branch master", "Your branch is up to date with 'origin/master'.", "", "nothing to commit, working tree clean"],
            REPO,
        )

        for bucket in (Bucket.UNTRACKED, Bucket.NOT_STAGED, Bucket.STAGED, Bucket.CONFLICTED):
            self.assertEqual(report.bucket(bucket), [])

    def test_deleted_records_are_dirty(self) -> None:
        report = parse_status(["Changes not staged for commit:", "deleted:    gone.cs", "modified:   kept.cs"], REPO)

        gone, kept = report.bucket(Bucket.NOT_STAGED)
        self.assertTrue(gone.dirty)
        self.assertFalse(kept.dirty)

    def test_blank_lines_do_not_change_state(self) -> None:
        parser = StatusParser(REPO)
        parser.feed("Untracked files:")
        parser.feed("")
        parser.feed("   ")
        self.assertIs(parser.state, ParseState.UNTRACKED)
        parser.feed("scratch.cs")
        self.assertEqual(len(parser.report.bucket(Bucket.UNTRACKED)), 1)


if __name__ == "__main__":
    unittest.main()
