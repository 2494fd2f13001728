import os.path

from configparser import ConfigParser

from kubefs.config import Config, KubeConfig, TargetConfig
from kubefs.target import Target


def test_kube_config_defaults():
    parser = ConfigParser()
    parser.read_string("[kube]")

    cfg = KubeConfig.load(parser["kube"])

    assert cfg.namespace == "default"
    assert cfg.kubeconfig is None
    assert cfg.context is None
    assert cfg.timeout is None


def test_kube_config_load():
    parser = ConfigParser()
    parser.read_string(
        """
        [kube]
        namespace = prod
        kubeconfig = ~/test
        context = staging
        timeout = 30
        """
    )

    cfg = KubeConfig.load(parser["kube"])

    assert cfg.namespace == "prod"
    assert cfg.kubeconfig == os.path.expanduser("~/test")
    assert cfg.context == "staging"
    assert cfg.timeout == 30


def test_target_config_load():
    parser = ConfigParser()
    parser.read_string(
        """
        [target.web]
        pod = web-0
        container = nginx
        """
    )

    cfg = TargetConfig.load(parser["target.web"])

    assert cfg == TargetConfig(pod="web-0", container="nginx", namespace=None)


def test_config_defaults(tmpdir):
    cfg = Config.load(str(tmpdir / "nonexistent"))

    assert cfg.kube is not None
    assert cfg.targets() == []


def test_config_load(tmp_path):
    (tmp_path / "config").write_text(
        """
        [kube]
        namespace = prod
        timeout = 5

        [target.web]
        pod = web-0
        container = nginx

        [target.db]
        pod = db-0
        namespace = data
        """
    )

    cfg = Config.load(str(tmp_path / "config"))

    assert cfg.kube.namespace == "prod"
    assert cfg.kube.timeout == 5

    assert list(cfg.target_configs) == ["web", "db"]
    assert cfg.targets() == [
        Target("web-0", "nginx", "prod"),
        Target("db-0", None, "data"),
    ]
    assert cfg.targets("dev")[0] == Target("web-0", "nginx", "dev")


def test_config_load_failure_nonfatal(tmp_path):
    (tmp_path / "config").write_text("blabla")

    cfg = Config.load(str(tmp_path / "config"))

    assert cfg.kube is not None


def test_config_target_without_pod_nonfatal(tmp_path, caplog):
    (tmp_path / "config").write_text("[target.web]\ncontainer = nginx\n")

    cfg = Config.load(str(tmp_path / "config"))

    assert cfg.targets() == []
    assert "missing a pod" in caplog.text
