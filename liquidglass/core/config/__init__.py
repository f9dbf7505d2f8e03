from liquidglass.core.config.manager import ConfigManager
from liquidglass.core.config.models import AppConfig
from liquidglass.core.config.paths import ConfigFsPaths

__all__ = ["AppConfig", "ConfigFsPaths", "ConfigManager"]
