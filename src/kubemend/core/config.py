"""
KUBEMEND CONFIGURATION MANAGER
------------------------------
Handles loading of the optional workspace configuration (.kubemend.yaml).
Allows customization of:
- Fixer tunables (confidence threshold, aggressive mode, iterations, indent)
- Output defaults (diff display, backups)

Command line flags always win over values found here.
"""

import copy
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from ruamel.yaml import YAML, YAMLError

from kubemend.core.models import FixerOptions

logger = logging.getLogger("kubemend.config")

CONFIG_DIR = ".kubemend"
CONFIG_FILE = ".kubemend.yaml"


class ConfigManager:
    """
    Manages user configuration state.
    defaults:
      fixer:
        confidence_threshold: 0.7
        aggressive: false
        max_iterations: 3
        indent_size: 2
      output:
        diff: false
        backup: true
    """

    DEFAULT_CONFIG: Dict[str, Dict[str, Any]] = {
        "fixer": {
            "confidence_threshold": 0.7,
            "aggressive": False,
            "max_iterations": 3,
            "indent_size": 2,
        },
        "output": {
            "diff": False,
            "backup": True,
        },
    }

    def __init__(self, workspace_root: Path):
        self.workspace = Path(workspace_root)
        self.config = copy.deepcopy(self.DEFAULT_CONFIG)
        self.source: Optional[Path] = None
        self._load_config()

    def _load_config(self):
        """
        Attempts to load configuration from:
        1. .kubemend/config.yaml (Preferred)
        2. .kubemend.yaml (Root file)
        """
        yaml = YAML(typ='safe')
        possible_files = [self.workspace / CONFIG_DIR / "config.yaml", self.workspace / CONFIG_FILE]

        for path in possible_files:
            if not path.is_file():
                continue
            try:
                loaded = yaml.load(path)
            except (YAMLError, OSError) as e:
                logger.warning(f"Failed to parse {path.name}: {e}")
                continue
            if isinstance(loaded, dict):
                self._merge_config(loaded)
            elif loaded is not None:
                logger.warning(f"Ignoring {path.name}: top level must be a mapping")
                continue
            self.source = path
            logger.info(f"Loaded configuration from {path.name}")
            return

    def _merge_config(self, user_config: Dict[str, Any]):
        """Depth-1 merge of user config into defaults. Unknown sections are ignored."""
        for section, values in user_config.items():
            if section not in self.config:
                logger.debug(f"Unknown config section '{section}' ignored")
                continue
            if isinstance(values, dict):
                self.config[section].update(values)

    def get(self, section: str, key: str, default: Any = None) -> Any:
        return self.config.get(section, {}).get(key, default)

    def fixer_options(self, **overrides: Any) -> FixerOptions:
        """FixerOptions from the `fixer` section; non-None overrides win."""
        fixer = self.config["fixer"]
        values = {
            "confidence_threshold": float(fixer.get("confidence_threshold", 0.7)),
            "aggressive": bool(fixer.get("aggressive", False)),
            "max_iterations": int(fixer.get("max_iterations", 3)),
            "indent_size": int(fixer.get("indent_size", 2)),
        }
        values.update({k: v for k, v in overrides.items() if v is not None and k in values})
        return FixerOptions(**values)

    @property
    def show_diff(self) -> bool:
        return bool(self.config["output"].get("diff", False))

    @property
    def backup(self) -> bool:
        return bool(self.config["output"].get("backup", True))
