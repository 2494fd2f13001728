from datetime import datetime, timezone

import pytest

from kubefs.errors import RemoteNotFoundError
from kubefs.filesystem import parser
from kubefs.filesystem.common import FileType

GNU_LISTING = """total 16
drwxr-xr-x  4 0 0 4096 Oct 18 09:15 .
drwxr-xr-x 21 0 0 4096 Jan  3  2022 ..
-rw-r--r--  1 1000 1000  220 Feb 25  2020 .bash_logout
drwx------  2 1000 1000 4096 Oct 18 09:15 my dir
lrwxrwxrwx  1 0 0   11 Oct 17 23:59 link -> /etc/passwd
crw-rw-rw-  1 0 0 1, 3 Oct 18 09:00 null
-rwsr-xr-x  1 0 0 54096 Mar 14  2022 passwd
"""

BUSYBOX_LISTING = """drwxr-xr-x    1 0        0             4096 Oct 18 09:15 .
-rwxr-xr-x    1 0        0           827552 Jun  6  2023 busybox
lrwxrwxrwx    1 0        0               12 Oct 18 09:15 sh -> /bin/busybox
"""

NOW = datetime(2023, 10, 18, 12, 0, tzinfo=timezone.utc)


def test_quote():
    assert parser.quote("/tmp/plain") == "/tmp/plain"
    assert parser.quote("/tmp/my file; rm -rf /") == "'/tmp/my file; rm -rf /'"
    assert parser.quote("it's") == "'it'\"'\"'s'"
    assert parser.quote("") == "''"


def test_absolutize():
    assert parser.absolutize("/home", "file") == "/home/file"
    assert parser.absolutize("/home", "/etc/") == "/etc"
    assert parser.absolutize("/home/user", "..") == "/home"
    assert parser.absolutize("/", "../..") == "/"
    assert parser.absolutize("/", "//x") == "/x"
    assert parser.absolutize("/a", ".") == "/a"


def test_split_name_and_link():
    assert parser.split_name_and_link("link -> /etc/passwd") == ("link", "/etc/passwd")
    assert parser.split_name_and_link("a -> b -> c") == ("a", "b -> c")
    assert parser.split_name_and_link("plain") == ("plain", None)


def test_parse_ls_time_with_year():
    parsed = parser.parse_ls_time("Feb 25  2020", NOW)

    assert parsed == datetime(2020, 2, 25, tzinfo=timezone.utc)


def test_parse_ls_time_recent():
    parsed = parser.parse_ls_time("Oct 18 09:15", NOW)

    assert parsed == datetime(2023, 10, 18, 9, 15, tzinfo=timezone.utc)


def test_parse_ls_time_previous_year():
    parsed = parser.parse_ls_time("Dec 30 10:00", NOW)

    assert parsed.year == 2022


def test_parse_ls_time_leap_day():
    now = datetime(2024, 2, 28, tzinfo=timezone.utc)
    parsed = parser.parse_ls_time("Feb 29 10:00", now)

    assert parsed == datetime(2023, 2, 28, 10, 0, tzinfo=timezone.utc)


def test_parse_ls_time_invalid():
    assert parser.parse_ls_time("Okt 18 09:15", NOW).timestamp() == 0
    assert parser.parse_ls_time("garbage", NOW).timestamp() == 0


def test_format_touch_time():
    time = datetime(2022, 3, 4, 5, 6, 7, tzinfo=timezone.utc)
    assert parser.format_touch_time(time) == "202203040506.07"


def test_parse_ls_line_file():
    entry = parser.parse_ls_line(
        "/root", "-rw-r--r--  1 1000 1000  220 Feb 25  2020 .bash_logout"
    )

    assert entry.path == "/root/.bash_logout"
    assert entry.is_file
    assert entry.metadata.size == 220
    assert entry.metadata.mode == 0o644
    assert entry.metadata.uid == 1000
    assert entry.metadata.gid == 1000
    assert entry.metadata.symlink is None


def test_parse_ls_line_symlink():
    entry = parser.parse_ls_line(
        "/", "lrwxrwxrwx  1 0 0   11 Oct 17 23:59 link -> /etc/passwd"
    )

    assert entry.path == "/link"
    assert entry.is_symlink
    assert entry.metadata.symlink == "/etc/passwd"


def test_parse_ls_line_markers():
    entry = parser.parse_ls_line("/", "-rw-r--r--. 1 0 0 3 Oct 17 23:59 selinux")
    assert entry.name == "selinux"

    entry = parser.parse_ls_line("/", "-rw-r--r--+ 1 0 0 3 Oct 17 23:59 acl")
    assert entry.name == "acl"


def test_parse_ls_line_named_owner():
    entry = parser.parse_ls_line("/", "-rw-r--r-- 1 root root 3 Oct 17 23:59 file")

    assert entry.metadata.uid is None
    assert entry.metadata.gid is None


def test_parse_ls_line_invalid():
    assert parser.parse_ls_line("/", "total 16") is None
    assert parser.parse_ls_line("/", "") is None
    assert parser.parse_ls_line("/", "crw-rw-rw- 1 0 0 1, 3 Oct 18 09:00 null") is None
    assert parser.parse_ls_line("/", "drwxr-xr-x 4 0 0 4096 Oct 18 09:15 .") is None
    assert parser.parse_ls_line("/", "drwxr-xr-x 4 0 0 4096 Oct 18 09:15 ..") is None


def test_parse_ls_output_gnu():
    entries = parser.parse_ls_output("/home/user", GNU_LISTING)

    assert [e.name for e in entries] == [".bash_logout", "my dir", "link", "passwd"]
    assert entries[1].path == "/home/user/my dir"
    assert entries[1].metadata.file_type == FileType.DIRECTORY
    assert entries[3].metadata.mode == 0o4755


def test_parse_ls_output_busybox():
    entries = parser.parse_ls_output("/bin", BUSYBOX_LISTING)

    assert [e.path for e in entries] == ["/bin/busybox", "/bin/sh"]
    assert entries[0].metadata.size == 827552
    assert entries[1].metadata.symlink == "/bin/busybox"


def test_parse_ls_output_crlf():
    entries = parser.parse_ls_output("/", "-rw-r--r-- 1 0 0 3 Oct 17 23:59 a\r\n")

    assert [e.name for e in entries] == ["a"]


def test_parse_ls_output_empty():
    assert parser.parse_ls_output("/", "") == []
    assert parser.parse_ls_output("/", "total 0\n") == []


def test_parse_stat():
    entry = parser.parse_stat(
        "/etc/hosts", "-rw-r--r-- 1 0 0 174 Oct 17 23:59 /etc/hosts\n"
    )

    assert entry.path == "/etc/hosts"
    assert entry.metadata.size == 174


def test_parse_stat_symlink():
    entry = parser.parse_stat(
        "/bin/sh", "lrwxrwxrwx 1 0 0 12 Oct 18 09:15 /bin/sh -> /bin/busybox\n"
    )

    assert entry.path == "/bin/sh"
    assert entry.metadata.symlink == "/bin/busybox"


def test_parse_stat_root():
    entry = parser.parse_stat("/", "drwxr-xr-x 21 0 0 4096 Jan  3  2022 /\n")

    assert entry.path == "/"
    assert entry.is_dir


def test_parse_stat_nothing():
    with pytest.raises(RemoteNotFoundError):
        parser.parse_stat("/x", "")
