from hackjudge.config.settings import FeatureFlags, Settings, get_bool_env

__all__ = ["FeatureFlags", "Settings", "get_bool_env"]
