"""
Tests for the command-line entry point.
"""

import main


class TestMainExitCodes:

    def test_invalid_shard_count_aborts_cleanly(self, tmp_path):
        """A bad --shards value is a configuration error: exit 2, nothing written."""
        out_dir = tmp_path / "out"

        code = main.main(["--shards", "0", "--output-dir", str(out_dir), "--data-dir", str(tmp_path)])

        assert code == 2
        assert not out_dir.exists()

    def test_invalid_rules_file_aborts_cleanly(self, tmp_path):
        code = main.main(["--rules", str(tmp_path / "missing.json"), "--output-dir", str(tmp_path / "out")])

        assert code == 2

    def test_run_writes_report(self, tmp_path):
        out_dir = tmp_path / "out"

        code = main.main(["--data-dir", str(tmp_path), "--output-dir", str(out_dir), "--reference-date", "2025-06-30"])

        assert code == 0
        assert (out_dir / "care_gap_report.json").exists()
        assert (out_dir / "diagnostics.json").exists()
