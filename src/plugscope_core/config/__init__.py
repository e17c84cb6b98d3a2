from ._service import (  # noqa F401
    BaseModel,
    ConfBuilder,
    ConfigBase,
    ConfigError,
    ConfigSettings,
    EnvSettingsOption,
    SectionExists,
    SettingsConfigDict,
    config_version,
    read_config_toml,
    section,
    set_env_settings_option,
)
