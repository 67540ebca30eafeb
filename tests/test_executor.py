"""Tests for dabstrap.executor."""

from __future__ import annotations

import sys

from dabstrap.executor import EXIT_NOT_FOUND, CommandResult, Executor


def _py(code: str) -> list[str]:
    return [sys.executable, "-c", code]


class TestExecutor:
    def test_captures_stdout(self):
        result = Executor().run(_py("print('hello')"))
        assert result.ok
        assert result.stdout == "hello\n"

    def test_nonzero_exit_is_returned_not_raised(self):
        result = Executor().run(_py("import sys; sys.stderr.write('bad'); sys.exit(3)"))
        assert result.ok is False
        assert result.exit_code == 3
        assert result.stderr == "bad"

    def test_killed_child_reports_signal(self):
        result = Executor().run(_py("import os, signal; os.kill(os.getpid(), signal.SIGTERM)"))
        assert result.signal == 15
        assert result.signal_name == "SIGTERM"

    def test_missing_command(self):
        result = Executor().run(["definitely-not-a-real-command-xyz"])
        assert result.exit_code == EXIT_NOT_FOUND
        assert "definitely-not-a-real-command-xyz" in result.stderr

    def test_cwd(self, tmp_path):
        result = Executor().run(_py("import os; print(os.getcwd())"), cwd=tmp_path)
        assert result.stdout.strip() == str(tmp_path.resolve())

    def test_env_is_merged(self):
        result = Executor().run(_py("import os; print(os.environ['DAB_TEST'], 'PATH' in os.environ)"), env={"DAB_TEST": "x"})
        assert result.stdout.split() == ["x", "True"]

    def test_input(self):
        result = Executor().run(_py("import sys; print(sys.stdin.read().upper())"), input="abc")
        assert result.stdout.strip() == "ABC"

    def test_argument_with_spaces_stays_whole(self):
        result = Executor().run(_py("import sys; print(len(sys.argv[1:]))") + ["CFLAGS=-O3 -DNDEBUG"])
        assert result.stdout.strip() == "1"

    def test_elevate_prefixes_sudo_when_not_root(self, monkeypatch):
        monkeypatch.setattr("os.geteuid", lambda: 1000)
        result = Executor(sudo=[sys.executable, "-c", "import sys; print(sys.argv[1:])"]).run(["ldconfig"], elevate=True)
        assert result.argv[-1] == "ldconfig"
        assert result.elevated is True
        assert "ldconfig" in result.stdout

    def test_elevated_env_passes_through_sudo(self, monkeypatch):
        monkeypatch.setattr("os.geteuid", lambda: 1000)
        sudo = [sys.executable, "-c", "import sys; print(sys.argv[1:])"]
        result = Executor(sudo=sudo).run(["apt-get", "install"], env={"DEBIAN_FRONTEND": "noninteractive"}, elevate=True)
        assert result.argv[-4:] == ("env", "DEBIAN_FRONTEND=noninteractive", "apt-get", "install")

    def test_elevate_skips_sudo_as_root(self, monkeypatch):
        monkeypatch.setattr("os.geteuid", lambda: 0)
        result = Executor(sudo=["false"]).run(_py("print('ok')"), elevate=True)
        assert result.ok
        assert result.argv[0] == sys.executable


class TestCommandResult:
    def test_output_joins_streams(self):
        result = CommandResult(argv=("x",), exit_code=1, stdout="out\n", stderr="err\n")
        assert result.output == "out\nerr"

    def test_no_signal_for_normal_exit(self):
        assert CommandResult(argv=("x",), exit_code=2).signal is None

    def test_denied_on_sudo_password_failure(self):
        result = CommandResult(
            argv=("sudo", "make", "install"),
            exit_code=1,
            stderr="sudo: a password is required\n",
            elevated=True,
        )
        assert result.denied is True

    def test_denied_when_not_in_sudoers(self):
        result = CommandResult(
            argv=("sudo", "ldconfig"),
            exit_code=1,
            stderr="bob is not in the sudoers file.\nsudo: This incident has been reported.",
            elevated=True,
        )
        assert result.denied is True

    def test_not_denied_for_ordinary_failure(self):
        result = CommandResult(argv=("sudo", "make", "install"), exit_code=2, stderr="make: *** error", elevated=True)
        assert result.denied is False

    def test_not_denied_without_elevation(self):
        result = CommandResult(argv=("make",), exit_code=1, stderr="sudo: a password is required")
        assert result.denied is False
