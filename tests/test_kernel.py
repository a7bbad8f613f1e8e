# tests/test_kernel.py
"""
Kernel tests with dependency injection.
Kernel only routes and formats; the real work is delegated to adapters
and the executor, which are faked here.
"""
from __future__ import annotations

import os
from pathlib import Path

import pytest

import vps_shell.kernel as kernel_mod
from vps_shell.adapters import AdapterResult
from vps_shell.config import UI_CLEAR, ShellConfig
from vps_shell.executor import TTYResult
from vps_shell.kernel import EXIT_REINSTALL, Kernel
from vps_shell.store import FileHistoryStore

# ----------------------------------------------------------------
# Boundary tests (hard gates)
# ----------------------------------------------------------------


def test_kernel_module_does_not_spawn_processes_directly() -> None:
    """
    HARD BOUNDARY:
    - Kernel must go through the injected Executor/adapters.
    - No subprocess, os.system or tar usage inside kernel.py.
    """
    text = Path(kernel_mod.__file__).read_text(encoding="utf-8")

    forbidden = ["import subprocess", "os.system(", "os.popen(", "tarfile"]
    hits = [s for s in forbidden if s in text]
    assert not hits, f"Kernel must not run tools directly. Found: {hits}"


# ----------------------------------------------------------------
# Mock dependencies
# ----------------------------------------------------------------


class FakeExecutor:
    def __init__(self, exit_code: int = 0):
        self.tty_commands: list[tuple[str, str | None]] = []
        self.argv_commands: list[list[str]] = []
        self.exit_code = exit_code

    def run_argv(self, argv, cwd=None):
        self.argv_commands.append(list(argv))
        return (0, "", "", "2025-06-20T02:42:21", 1)

    def run_tty(self, command, cwd=None):
        self.tty_commands.append((command, cwd))
        return TTYResult(self.exit_code, "2025-06-20T02:42:21", 1)


class FakeAdapters:
    def __init__(self):
        self.calls: list[tuple] = []
        self.results: dict[str, AdapterResult] = {}

    def _call(self, name: str, *args) -> AdapterResult:
        self.calls.append((name, *args))
        return self.results.get(name, AdapterResult.success(f"{name} ok"))

    def backup(self):
        return self._call("backup")

    def restore(self, backup_file):
        return self._call("restore", backup_file)

    def status(self):
        return self._call("status")

    def install_ssh(self):
        return self._call("install_ssh")

    def reinstall(self, confirmed):
        if not confirmed:
            self.calls.append(("reinstall", False))
            return AdapterResult.info("Reinstallation cancelled.", ok=False)
        return self._call("reinstall", True)


@pytest.fixture
def history_file(tmp_path: Path) -> Path:
    return tmp_path / ".custom_shell_history"


@pytest.fixture
def kernel(history_file: Path) -> Kernel:
    cfg = ShellConfig(history_file=history_file, hostname="MyVPS")
    k = Kernel(
        config=cfg,
        store=FileHistoryStore(history_file, cfg.max_history),
        executor=FakeExecutor(),
        adapters=FakeAdapters(),
    )
    k.output = []  # type: ignore[attr-defined]
    k.output_fn = k.output.append  # type: ignore[attr-defined]
    k.start()
    return k


def _history(path: Path) -> list[str]:
    return path.read_text().splitlines()


# ----------------------------------------------------------------
# Session lifecycle
# ----------------------------------------------------------------


def test_start_creates_history_and_renders_banner_hint_prompt(
    kernel: Kernel, history_file: Path
) -> None:
    out = kernel.start()

    assert history_file.is_file()
    assert kernel.running is True
    assert 'Done (s)! For help, type "help"' in out
    assert "[INFO]" in out and "Type 'help'" in out
    assert "root@MyVPS" in out


def test_exit_ends_session_with_status_zero(kernel: Kernel) -> None:
    out = kernel.handle_command("exit")

    assert kernel.running is False
    assert kernel.exit_code == 0
    assert "Session ended. Goodbye!" in out


def test_stop_is_an_exit_alias_but_is_recorded(
    kernel: Kernel, history_file: Path
) -> None:
    kernel.handle_command("stop")

    assert kernel.running is False
    assert _history(history_file) == ["stop"]


def test_exit_is_not_recorded(kernel: Kernel, history_file: Path) -> None:
    kernel.handle_command("echo one")
    kernel.handle_command("exit")

    assert _history(history_file) == ["echo one"]


# ----------------------------------------------------------------
# History
# ----------------------------------------------------------------


def test_history_is_recorded_before_the_handler_runs(
    kernel: Kernel, history_file: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    seen: list[list[str]] = []

    def backup():
        seen.append(_history(history_file))
        raise RuntimeError("crash mid-handler")

    monkeypatch.setattr(kernel.adapters, "backup", backup)

    with pytest.raises(RuntimeError):
        kernel.handle_command("backup")

    assert seen == [["backup"]]


def test_history_command_prints_file_including_itself(kernel: Kernel) -> None:
    kernel.handle_command("echo a")
    out = kernel.handle_command("history")

    assert out == "echo a\nhistory\n"


def test_history_keeps_last_thousand_in_order(
    kernel: Kernel, history_file: Path
) -> None:
    for i in range(1003):
        kernel.handle_command(f"echo {i}")

    lines = _history(history_file)
    assert len(lines) == 1000
    assert lines[0] == "echo 3"
    assert lines[-1] == "echo 1002"


# ----------------------------------------------------------------
# Builtins
# ----------------------------------------------------------------


@pytest.mark.parametrize("line", ["clear", "cls"])
def test_clear_returns_ui_clear(kernel: Kernel, line: str) -> None:
    assert kernel.handle_command(line) == UI_CLEAR


@pytest.mark.parametrize("line", ["sudo", "su"])
def test_sudo_reports_already_root(kernel: Kernel, line: str) -> None:
    out = kernel.handle_command(line)

    assert "[ERROR]" in out
    assert "You are already running as root." in out
    assert kernel.executor.tty_commands == []


def test_help_lists_builtins(kernel: Kernel) -> None:
    out = kernel.handle_command("help")

    for name in ["clear, cls", "install-ssh", "status", "backup", "restore"]:
        assert name in out


@pytest.mark.parametrize(
    "line, call",
    [("backup", "backup"), ("status", "status"), ("install-ssh", "install_ssh")],
)
def test_adapter_builtins_report_one_status_line(
    kernel: Kernel, line: str, call: str
) -> None:
    out = kernel.handle_command(line)

    assert kernel.adapters.calls == [(call,)]
    assert out.count("\n") == 0
    assert f"[SUCCESS]\033[0m {call} ok" in out


def test_adapter_failure_is_an_error_line_and_session_continues(
    kernel: Kernel,
) -> None:
    kernel.adapters.results["backup"] = AdapterResult.failure(
        "tar is not installed. Please install tar first."
    )

    out = kernel.handle_command("backup")

    assert "[ERROR]" in out and "tar is not installed" in out
    assert kernel.running is True


def test_empty_adapter_message_prints_nothing(kernel: Kernel) -> None:
    kernel.adapters.results["status"] = AdapterResult(True)

    assert kernel.handle_command("status") == ""


# ----------------------------------------------------------------
# Restore
# ----------------------------------------------------------------


def test_restore_without_argument_prints_usage_and_skips_adapter(
    kernel: Kernel,
) -> None:
    out = kernel.handle_command("restore")

    lines = out.splitlines()
    assert len(lines) == 2
    assert "Usage: restore <backup_file>" in lines[0]
    assert "Example: restore backup_20250620024221.tar.gz" in lines[1]
    assert kernel.adapters.calls == []


def test_restore_passes_argument_to_adapter(kernel: Kernel) -> None:
    kernel.handle_command("restore backup_20250620024221.tar.gz")

    assert kernel.adapters.calls == [
        ("restore", "backup_20250620024221.tar.gz")
    ]


# ----------------------------------------------------------------
# Reinstall
# ----------------------------------------------------------------


@pytest.mark.parametrize("answer", ["no", "YES", "y", "", "yes please"])
def test_reinstall_declined_leaves_session_running(
    kernel: Kernel, answer: str
) -> None:
    kernel.ask_fn = lambda prompt: answer

    out = kernel.handle_command("reinstall")

    assert kernel.running is True
    assert kernel.exit_code == 0
    assert "Reinstallation cancelled." in out
    assert kernel.adapters.calls == [("reinstall", False)]


def test_reinstall_confirmed_exits_with_status_two(kernel: Kernel) -> None:
    prompts: list[str] = []

    def ask(prompt: str) -> str:
        prompts.append(prompt)
        return "yes"

    kernel.ask_fn = ask

    kernel.handle_command("reinstall")

    assert kernel.running is False
    assert kernel.exit_code == EXIT_REINSTALL == 2
    assert kernel.adapters.calls == [("reinstall", True)]
    assert "reinstall the OS? This will wipe all data. (yes/no)" in prompts[0]
    assert any("Reinstalling...." in s for s in kernel.output)


def test_reinstall_exits_two_even_when_wipe_fails(kernel: Kernel) -> None:
    kernel.ask_fn = lambda prompt: "yes"
    kernel.adapters.results["reinstall"] = AdapterResult.failure("rm failed")

    out = kernel.handle_command("reinstall")

    assert "[ERROR]" in out
    assert kernel.running is False
    assert kernel.exit_code == 2


# ----------------------------------------------------------------
# Raw fallback
# ----------------------------------------------------------------


def test_unrecognized_line_is_forwarded_verbatim(kernel: Kernel) -> None:
    out = kernel.handle_command("echo hi && ls | wc -l")

    assert out == ""
    assert kernel.executor.tty_commands == [
        ("echo hi && ls | wc -l", os.getcwd())
    ]


def test_raw_echo_runs_in_real_shell(
    history_file: Path, capfd: pytest.CaptureFixture[str]
) -> None:
    """The fallback is a real, unsandboxed /bin/sh."""
    from vps_shell.executor import SubprocessExecutor

    k = Kernel(
        config=ShellConfig(history_file=history_file),
        store=FileHistoryStore(history_file),
        executor=SubprocessExecutor(force_color=False),
        adapters=FakeAdapters(),
    )
    k.start()

    k.handle_command("echo hi")

    assert capfd.readouterr().out == "hi\n"


def test_cd_changes_process_directory_and_prompt(
    kernel: Kernel, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    home = tmp_path / "home"
    (home / "work").mkdir(parents=True)
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.chdir(home)

    assert kernel.handle_command("cd work") == ""
    assert os.getcwd() == str(home / "work")
    assert ":\033[0;31m~/work\033[0m#" in kernel.prompt()

    kernel.handle_command("cd -")
    assert os.getcwd() == str(home)
    assert kernel.executor.tty_commands == []


def test_cd_to_missing_directory_reports_error(
    kernel: Kernel, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.chdir(tmp_path)

    out = kernel.handle_command("cd nope")

    assert "[ERROR]" in out and "no such directory" in out
    assert os.getcwd() == str(tmp_path)


def test_cd_with_shell_syntax_goes_to_shell(
    kernel: Kernel, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.chdir(tmp_path)

    kernel.handle_command("cd /tmp && ls")

    assert kernel.executor.tty_commands == [("cd /tmp && ls", str(tmp_path))]


# ----------------------------------------------------------------
# Prompt
# ----------------------------------------------------------------


def test_prompt_outside_home_shows_absolute_path(
    kernel: Kernel, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    monkeypatch.chdir(tmp_path)

    assert f"root@MyVPS\033[0m:\033[0;31m{tmp_path}\033[0m#" in kernel.prompt()


def test_prompt_does_not_treat_sibling_prefix_as_home(
    kernel: Kernel, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    (tmp_path / "home").mkdir()
    (tmp_path / "homework").mkdir()
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    monkeypatch.chdir(tmp_path / "homework")

    assert kernel.formatted_dir() == str(tmp_path / "homework")


def test_prompt_at_home_is_tilde(
    kernel: Kernel, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.chdir(tmp_path)

    assert kernel.formatted_dir() == "~"


# ----------------------------------------------------------------
# Crash log
# ----------------------------------------------------------------


def test_write_crash_log_appends_entry(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("VPS_SHELL_DATA_HOME", str(tmp_path))

    try:
        raise ValueError("boom")
    except ValueError as e:
        kernel_mod.write_crash_log(e, raw_command="backup")

    log = (tmp_path / "vps_shell" / "logs" / "crash.log").read_text()
    assert "raw=backup" in log
    assert "error=ValueError: boom" in log
    assert "Traceback" in log


def test_reinstall_confirmation_at_end_of_input_declines(kernel: Kernel) -> None:
    def closed(prompt: str) -> str:
        raise EOFError

    kernel.ask_fn = closed

    out = kernel.handle_command("reinstall")

    assert "Reinstallation cancelled." in out
    assert kernel.running is True
    assert kernel.adapters.calls == [("reinstall", False)]


def test_cd_expands_environment_variables(
    kernel: Kernel, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    (tmp_path / "work").mkdir()
    monkeypatch.setenv("WORKDIR", str(tmp_path / "work"))
    monkeypatch.chdir(tmp_path)

    assert kernel.handle_command("cd $WORKDIR") == ""
    assert os.getcwd() == str(tmp_path / "work")
    assert kernel.executor.tty_commands == []


def test_cd_with_unknown_variable_goes_to_shell(
    kernel: Kernel, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.delenv("NOPE_NOT_SET", raising=False)
    monkeypatch.chdir(tmp_path)

    kernel.handle_command("cd $NOPE_NOT_SET")

    assert kernel.executor.tty_commands == [("cd $NOPE_NOT_SET", str(tmp_path))]
