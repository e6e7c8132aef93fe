from .setting import (
    AnalysisSettings,
    DatabaseSettings,
    GitHubSettings,
    PublishSettings,
    ServerSettings,
    SiteloomSettings,
    get_config_path,
    get_settings,
    load_settings,
    reload_settings,
)

__all__ = [
    "AnalysisSettings",
    "DatabaseSettings",
    "GitHubSettings",
    "PublishSettings",
    "ServerSettings",
    "SiteloomSettings",
    "get_config_path",
    "get_settings",
    "load_settings",
    "reload_settings",
]
