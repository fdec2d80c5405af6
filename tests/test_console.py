import pytest

from dirsyncd.console import (
    Command,
    CommandError,
    CommandKind,
    format_log_line,
    main,
    parse_command,
)


def test_parse_add():
    assert parse_command("add /src /dst\n") == Command(CommandKind.ADD, "/src", "/dst")


def test_parse_skips_leading_spaces():
    assert parse_command("   status  /data\n") == Command(CommandKind.STATUS, "/data")


@pytest.mark.parametrize(
    "line, kind",
    [
        ("status /a", CommandKind.STATUS),
        ("cancel /a", CommandKind.CANCEL),
        ("sync /a", CommandKind.SYNC),
    ],
)
def test_parse_single_path_commands(line, kind):
    command = parse_command(line)
    assert command.kind is kind
    assert command.source == "/a"
    assert command.target is None


def test_parse_shutdown_ignores_arguments():
    assert parse_command("shutdown now\n") == Command(CommandKind.SHUTDOWN)


def test_add_without_target_is_error():
    with pytest.raises(CommandError, match="Usage: add <source> <target>"):
        parse_command("add /only")


@pytest.mark.parametrize("word", ["status", "cancel", "sync"])
def test_missing_path_is_error(word):
    with pytest.raises(CommandError, match="Usage"):
        parse_command(word + "\n")


def test_unknown_command():
    with pytest.raises(CommandError, match="Invalid input command"):
        parse_command("launch /a")


def test_blank_line_is_error():
    with pytest.raises(CommandError) as info:
        parse_command("   \n")
    assert str(info.value) == ""


def test_long_path_is_truncated():
    command = parse_command("status " + "x" * 300)
    assert command.source == "x" * 255


def test_format_add_line():
    line = format_log_line(Command(CommandKind.ADD, "a", "b"), "[T]")
    assert line == "[T] Command add a -> b\n"


def test_format_shutdown_line():
    assert format_log_line(Command(CommandKind.SHUTDOWN), "[T]") == "[T] Command shutdown\n"


@pytest.mark.parametrize("word", ["status", "cancel", "sync"])
def test_format_round_trip(word):
    command = parse_command(f"{word} /dir")
    line = format_log_line(command, "[S]")
    assert line == f"[S] Command {word} /dir\n"


def test_main_rejects_wrong_arguments(capsys):
    assert main(["-l"]) == 1
    assert "usage" in capsys.readouterr().err


def test_main_fails_without_manager_pipes(tmp_path, monkeypatch, capsys):
    monkeypatch.chdir(tmp_path)
    log = tmp_path / "console.log"
    assert main(["-l", str(log)]) == 1
    assert "Failed to open fss_in" in capsys.readouterr().err
    assert log.read_bytes() == b""