"""Tests for the command-line entry point."""
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from microfiche import main as main_module
from microfiche.models.schema import FicheSchema

HEADER = "Category,Subcategory,Concept,Note\n"


@pytest.mark.usefixtures("_clean_log_handlers")
class TestMain:
    """Tests for argument handling and mode selection."""

    @pytest.fixture(autouse=True)
    def _no_exit_hooks(self, test_config, tmp_path):
        self.config = test_config
        self.log_dir = tmp_path / "logs"
        with patch.object(main_module, "atexit"):
            yield

    def test_parse_args_defaults(self):
        args = main_module.parse_args([])
        assert args.mode == "shell"
        assert args.validate is False
        assert args.schema is None

    def test_update_config(self, tmp_path):
        args = main_module.parse_args([
            "--file", str(tmp_path / "x.db"), "--schema", "key_detail",
            "--log-dir", str(self.log_dir),
        ])
        main_module.update_config(args)
        assert self.config.data_file == tmp_path / "x.db"
        assert self.config.schema_kind is FicheSchema.KEY_DETAIL
        assert self.config.log_dir == self.log_dir

    def test_validate_mode_exit_status(self, tmp_path, capsys):
        path = tmp_path / "check.csv"
        path.write_text(HEADER + "A,B,C,dup\nA,B,C,dup\n", encoding="utf-8")
        with pytest.raises(SystemExit) as exc_info:
            main_module.main(["--file", str(path), "--validate", "--log-dir", str(self.log_dir)])
        assert exc_info.value.code == 1
        assert "Line 3: Duplicate entry" in capsys.readouterr().out

    def test_validate_reports_unloadable_file(self, tmp_path, capsys):
        """A file that fails to load is still checked row by row."""
        path = tmp_path / "broken.csv"
        path.write_text(HEADER + "A,B,C,keep\nonly,two\n", encoding="utf-8")
        with pytest.raises(SystemExit) as exc_info:
            main_module.main(["--file", str(path), "--validate", "--log-dir", str(self.log_dir)])
        assert exc_info.value.code == 1
        assert "Line 3: Expected 4 fields, found 2" in capsys.readouterr().out

    def test_validate_clean_file(self, tmp_path, capsys):
        path = tmp_path / "ok.csv"
        path.write_text(HEADER + "A,B,C,note\n", encoding="utf-8")
        with pytest.raises(SystemExit) as exc_info:
            main_module.main(["--file", str(path), "--validate", "--log-dir", str(self.log_dir)])
        assert exc_info.value.code == 0
        assert "No problems found." in capsys.readouterr().out

    def test_shell_mode_runs_shell(self, tmp_path):
        path = tmp_path / "notes.csv"
        path.write_text(HEADER + "A,B,C,note\n", encoding="utf-8")
        with patch("microfiche.shell.QueryShell") as shell_cls:
            main_module.main(["--file", str(path), "--log-dir", str(self.log_dir)])
        service = shell_cls.call_args[0][0]
        assert service.stats().notes == 1
        shell_cls.return_value.run.assert_called_once_with()

    def test_mcp_mode_runs_server(self, tmp_path):
        server = MagicMock()
        with patch("microfiche.server.mcp_server.MicroficheMcpServer", return_value=server) as cls:
            main_module.main([
                "--file", str(tmp_path / "absent.csv"), "--mode", "mcp",
                "--log-dir", str(self.log_dir),
            ])
        assert cls.call_args.kwargs["service"].store.is_empty()
        server.run.assert_called_once_with()
        assert Path(self.log_dir / "microfiche.log").exists()
