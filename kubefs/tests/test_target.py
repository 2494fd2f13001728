import pytest

from kubefs.errors import RemoteNotFoundError
from kubefs.target import Target, TargetResult


def test_defaults():
    target = Target("web-0")

    assert target.container is None
    assert target.namespace == "default"
    assert target.name == "default/web-0"


def test_name():
    assert Target("web-0", "nginx", "prod").name == "prod/web-0/nginx"
    assert str(Target("web-0", "nginx", "prod")) == "prod/web-0/nginx"


def test_validation():
    with pytest.raises(ValueError):
        Target("")

    with pytest.raises(ValueError):
        Target("web-0", namespace="")


def test_hashable():
    targets = {Target("web-0", "nginx"), Target("web-0", "nginx"), Target("web-1")}
    assert len(targets) == 2


def test_parse():
    assert Target.parse("web-0") == Target("web-0")
    assert Target.parse("web-0", namespace="prod") == Target("web-0", None, "prod")
    assert Target.parse("web-0/nginx") == Target("web-0", "nginx")
    assert Target.parse("prod/web-0/nginx", namespace="dev") == Target(
        "web-0", "nginx", "prod"
    )
    assert Target.parse("web-0/") == Target("web-0")


def test_parse_invalid():
    with pytest.raises(ValueError):
        Target.parse("a/b/c/d")

    with pytest.raises(ValueError):
        Target.parse("")


def test_result_value():
    result = TargetResult(Target("web-0"), value=42)

    assert result.ok
    assert result.unwrap() == 42


def test_result_error():
    error = RemoteNotFoundError.for_path("/x")
    result = TargetResult(Target("web-0"), error=error)

    assert not result.ok

    with pytest.raises(FileNotFoundError):
        result.unwrap()
