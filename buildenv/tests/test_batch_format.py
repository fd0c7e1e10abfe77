"""Tests for batched formatting."""

import io
import math
import tempfile
import unittest
from contextlib import redirect_stderr
from pathlib import Path
from typing import Iterator

from buildenv.tests.fake_runner import FakeRunner
from buildenv.util.batch_format import chunked, format_files, iter_source_files
from buildenv.util.config import ToolConfig
from buildenv.util.exceptions import (
    FormatFailure,
    PathRelativizationError,
    ProcessExitError,
)


ROOT = Path("/proj")
CONFIG = ROOT / "rustfmt.toml"


class TestChunked(unittest.TestCase):
    def test_batch_count_and_order(self) -> None:
        for length in range(0, 12):
            for size in range(1, 5):
                with self.subTest(length=length, size=size):
                    items = list(range(length))
                    batches = list(chunked(items, size))
                    self.assertEqual(len(batches), math.ceil(length / size))
                    self.assertTrue(all(1 <= len(b) <= size for b in batches))
                    self.assertEqual([x for b in batches for x in b], items)

    def test_is_lazy(self) -> None:
        consumed: list[int] = []

        def gen() -> Iterator[int]:
            for i in range(10):
                consumed.append(i)
                yield i

        batches = chunked(gen(), 3)
        self.assertEqual(next(batches), [0, 1, 2])
        self.assertEqual(consumed, [0, 1, 2])

    def test_rejects_bad_size(self) -> None:
        with self.assertRaises(ValueError):
            list(chunked([1, 2], 0))


class TestFormatFiles(unittest.TestCase):
    def setUp(self) -> None:
        self.runner = FakeRunner()
        self.stderr = io.StringIO()

    def _format(self, files, **kwargs) -> None:
        with redirect_stderr(self.stderr):
            format_files(self.runner, ROOT, files, "nightly", CONFIG, **kwargs)

    def test_one_command_per_batch(self) -> None:
        files = [ROOT / "src" / f"f{i}.rs" for i in range(600)]
        self._format(files, flags=["--check"])

        calls = self.runner.calls
        self.assertEqual(len(calls), 3)
        base = [
            "rustfmt",
            "+nightly",
            "--edition=2021",
            "--config-path",
            str(CONFIG),
            "--unstable-features",
            "--skip-children",
            "--check",
        ]
        passed: list[str] = []
        for call in calls:
            self.assertEqual(call.argv[: len(base)], base)
            self.assertTrue(call.quiet)
            self.assertEqual(call.cwd, ROOT)
            passed.extend(call.argv[len(base) :])
        self.assertEqual([len(c.argv) - len(base) for c in calls], [256, 256, 88])
        self.assertEqual(passed, [str(Path("src") / f"f{i}.rs") for i in range(600)])

    def test_echoes_command_once(self) -> None:
        files = [ROOT / f"f{i}.rs" for i in range(10)]
        self._format(files, batch_size=3)
        self.assertEqual(len(self.runner.calls), 4)
        echoed = [line for line in self.stderr.getvalue().splitlines() if line.startswith("$ ")]
        self.assertEqual(len(echoed), 1)
        self.assertTrue(echoed[0].endswith(" ..."))
        self.assertNotIn("f0.rs", echoed[0])

    def test_no_files_runs_nothing(self) -> None:
        self._format([])
        self.assertEqual(self.runner.calls, [])
        self.assertEqual(self.stderr.getvalue(), "")

    def test_batch_size_from_config(self) -> None:
        files = [ROOT / f"f{i}.rs" for i in range(5)]
        config = ToolConfig(formatter="fmt-tool", format_batch_size=2, format_edition="2018")
        self._format(files, config=config)
        self.assertEqual(len(self.runner.calls), 3)
        self.assertEqual(self.runner.calls[0].argv[:3], ["fmt-tool", "+nightly", "--edition=2018"])

    def test_zero_batch_size_rejected(self) -> None:
        files = [ROOT / f"f{i}.rs" for i in range(3)]
        with self.assertRaises(ValueError):
            self._format(files, batch_size=0)
        self.assertEqual(self.runner.calls, [])

    def test_path_outside_root(self) -> None:
        files = [ROOT / "a.rs", Path("/elsewhere/b.rs")]
        with self.assertRaises(PathRelativizationError) as ctx:
            self._format(files)
        self.assertEqual(ctx.exception.path, Path("/elsewhere/b.rs"))
        self.assertEqual(self.runner.calls, [])

    def test_earlier_batches_run_before_bad_path(self) -> None:
        files = [ROOT / "a.rs", ROOT / "b.rs", Path("/elsewhere/c.rs")]
        with self.assertRaises(PathRelativizationError):
            self._format(files, batch_size=2)
        self.assertEqual(len(self.runner.calls), 1)

    def test_iterator_error_aborts(self) -> None:
        def files() -> Iterator[Path]:
            yield ROOT / "a.rs"
            raise PermissionError("cannot read directory")

        with self.assertRaises(PermissionError):
            self._format(files())
        self.assertEqual(self.runner.calls, [])

    def test_formatter_failure_is_masked(self) -> None:
        self.runner.responses[("rustfmt",)] = ProcessExitError(["rustfmt"], 1)
        with self.assertRaises(FormatFailure) as ctx:
            self._format([ROOT / "a.rs", ROOT / "b.rs"], batch_size=1)
        self.assertEqual(ctx.exception.message, "`rustfmt` failed")
        # The first failing batch stops the run.
        self.assertEqual(len(self.runner.calls), 1)


class TestIterSourceFiles(unittest.TestCase):
    def test_walk_filters_and_skips(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            for rel in ["a.rs", "sub/b.rs", "target/c.rs", ".git/d.rs", "e.txt"]:
                path = root / rel
                path.parent.mkdir(parents=True, exist_ok=True)
                path.write_text("")

            found = list(iter_source_files(root))
            self.assertEqual(found, [root / "a.rs", root / "sub" / "b.rs"])

    def test_missing_root_raises(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            with self.assertRaises(FileNotFoundError):
                list(iter_source_files(Path(tmp) / "missing"))


if __name__ == "__main__":
    unittest.main()
