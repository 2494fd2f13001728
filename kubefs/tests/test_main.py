from unittest import mock
import logging

import pytest

from kubefs.__main__ import main
from kubefs.logger import log


def test_no_args():
    with pytest.raises(SystemExit):
        main([])


def test_debug_flag_set():
    with mock.patch("kubefs.__main__.Commands") as mock_commands:
        mock_commands().run.return_value = 0

        with pytest.raises(SystemExit):
            main(["--debug", "web-0", "ls"])

        assert log.getEffectiveLevel() == logging.DEBUG


def test_debug_flag_not_set():
    with mock.patch("kubefs.__main__.Commands") as mock_commands:
        mock_commands().run.return_value = 0

        with pytest.raises(SystemExit):
            main(["web-0", "ls"])

        assert log.getEffectiveLevel() == logging.ERROR


def test_exit_code():
    with mock.patch("kubefs.__main__.Commands") as mock_commands:
        mock_commands().run.return_value = 3

        with pytest.raises(SystemExit) as e:
            main(["web-0", "exec", "false"])

    assert e.value.code == 3


def test_command_failure(caplog):
    with mock.patch("kubefs.__main__.Commands") as mock_commands:
        mock_commands().run.side_effect = FileNotFoundError("foo")

        with pytest.raises(SystemExit) as e:
            main(["web-0", "ls"])

    assert e.value.code == 254
    assert "failed to run command: foo" in caplog.text


def test_interrupt():
    with mock.patch("kubefs.__main__.Commands") as mock_commands:
        mock_commands().run.side_effect = KeyboardInterrupt()

        with pytest.raises(SystemExit) as e:
            main(["web-0", "ls"])

    assert e.value.code == 130
