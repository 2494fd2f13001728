"""Module for configuration variables with defaults that are overridable by a file."""

from __future__ import annotations

from configparser import ConfigParser, SectionProxy
from dataclasses import dataclass, field
import os
from typing import Dict, List, Optional

import kubefs.constants as constants
from kubefs.logger import log
from kubefs.target import Target


@dataclass
class KubeConfig:
    """Configuration variables related to the cluster connection."""

    namespace: str = constants.DEFAULT_NAMESPACE

    kubeconfig: Optional[str] = None
    context: Optional[str] = None

    timeout: Optional[int] = None  # seconds

    @staticmethod
    def load(section: SectionProxy) -> KubeConfig:
        """Load overridden variables from a section within a config file."""
        config = KubeConfig()

        config.namespace = section.get("namespace", fallback=config.namespace)

        kubeconfig = section.get("kubeconfig", fallback=None)
        if kubeconfig:
            config.kubeconfig = os.path.expanduser(kubeconfig)

        config.context = section.get("context", fallback=config.context) or None
        config.timeout = section.getint("timeout", fallback=config.timeout)

        return config


@dataclass
class TargetConfig:
    """A named container, defined in a [target.NAME] section."""

    pod: str
    container: Optional[str] = None
    namespace: Optional[str] = None

    @staticmethod
    def load(section: SectionProxy) -> TargetConfig:
        """Load a target from a section within a config file."""
        pod = section.get("pod", fallback="")

        if not pod:
            raise ValueError(f"section [{section.name}] is missing a pod")

        return TargetConfig(
            pod=pod,
            container=section.get("container", fallback=None) or None,
            namespace=section.get("namespace", fallback=None) or None,
        )


@dataclass
class Config:
    """Configuration variables."""

    kube: KubeConfig = field(default_factory=KubeConfig)
    target_configs: Dict[str, TargetConfig] = field(default_factory=dict)

    def targets(self, namespace: Optional[str] = None) -> List[Target]:
        """
        Build the targets defined in the config file.

        Targets without a namespace of their own use the given namespace, or the
        namespace from the [kube] section if there is none.
        """
        default_namespace = namespace or self.kube.namespace

        return [
            Target(t.pod, t.container, t.namespace or default_namespace)
            for t in self.target_configs.values()
        ]

    @staticmethod
    def load(filename: str) -> Config:
        """Load overridden configuration variables from a config file."""
        parser = ConfigParser()

        config = Config()

        try:
            with open(filename, "r") as f:
                parser.read_string(f.read(), filename)

            if "kube" in parser:
                config.kube = KubeConfig.load(parser["kube"])

            for name in parser.sections():
                if name.startswith("target."):
                    target_name = name[len("target.") :]
                    config.target_configs[target_name] = TargetConfig.load(
                        parser[name]
                    )
        except FileNotFoundError:
            log.info(f"no config file at {filename}")
        except Exception as e:
            # An unreadable config file is not considered a fatal error since we can
            # fall back to defaults.
            log.error(f"failed to read config file {filename}: {e}")
            config = Config()
        else:
            log.info(f"loaded config: {config}")

        return config
