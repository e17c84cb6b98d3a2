#
# Copyright 2024 3liz
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at http://mozilla.org/MPL/2.0/.

"""Configuration management

Configuration is read from a toml file and/or from environment variables.

The rule for environment variable names is
``CONF_[<SECTION>__, ...]<KEY>``, i.e ``CONF_NVIM__ADDRESS``.

Casing does not matter but uppercase have precedence

Values are taken from multiple sources according
to the [`pydantic` settings](https://docs.pydantic.dev/latest/concepts/pydantic_settings)
priority rules:

1. Argument passed to configuration
2. Environment variables starting with `conf_`
3. Variables loaded from the secrets directory (/run/secrets)
4. The default field values

"""

import os
import sys

from importlib import metadata
from pathlib import Path
from typing import (
    Any,
    Callable,
    ClassVar,
    Literal,
    Optional,
    Self,
    Type,
    TypeAlias,
    assert_never,
    cast,
)

from pydantic import (
    BaseModel,
    JsonValue,
    TypeAdapter,
    ValidationError,
    create_model,
)
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from .. import componentmanager
from ..condition import assert_precondition

# Shortcut
getenv = os.getenv

ConfigError = ValidationError

CONFIG_SERVICE_CONTRACTID = "@plugscope/config-service;1"


def dict_merge(dct: dict, merge_dct: dict, model: Optional[BaseModel]):
    """Recursive dict merge

    Nested sub-models are merged key by key, any other field
    (plain dicts included) is replaced.
    """
    for k, v in merge_dct.items():
        if (
            model is not None
            and isinstance(model.__dict__.get(k), BaseModel)
            and isinstance(dct.get(k), dict)
            and isinstance(v, dict)
        ):
            dict_merge(dct[k], v, model.__dict__[k])
        else:
            dct[k] = v


def read_config(cfgfile: Path, loads: Callable[[str], dict], **kwds) -> dict[str, JsonValue]:
    """Generic config reader"""
    from string import Template

    cfgfile = Path(cfgfile)
    with cfgfile.open() as f:
        content = Template(f.read()).substitute(
            location=str(cfgfile.parent.absolute()),
            **kwds,
        )
        return loads(content)


def read_config_toml(cfgfile: Path, **kwds) -> dict:
    """Read toml configuration from file"""
    from tomllib import loads

    return read_config(cfgfile, loads=loads, **kwds)


# Base classe for configuration models
class ConfigBase(BaseModel, frozen=True, extra="forbid"):
    pass


class SectionExists(ValueError):
    pass


CreateDefault = object()

config_version = metadata.version("plugscope")


def secrets_dir() -> str | None:
    secrets_dir: str | None = getenv("SETTINGS_SECRETS_DIR", "/run/secrets")
    if not Path(cast(str, secrets_dir)).exists():
        secrets_dir = None

    return secrets_dir


EnvSettingsOption: TypeAlias = Literal["first", "last", "disabled"]


def set_env_settings_option(opt: EnvSettingsOption):
    ConfigSettings.env_settings_precedence = opt


#
# The base model for the config settings
#
class ConfigSettings(BaseSettings):
    #
    # Precedence of environment variables
    # * 'first': environment variables have precedence over configuration
    #   files and secrets.
    # * 'last': configuration files and secrets have precedence over
    #   environment variables.
    # * 'disabled': environment variables are ignored.
    #
    env_settings_precedence: ClassVar[EnvSettingsOption] = "last"

    model_config = SettingsConfigDict(
        frozen=True,
        extra="ignore",
        env_nested_delimiter="__",
        env_prefix="conf_",
        secrets_dir=secrets_dir(),
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: Type[BaseSettings],  # noqa F841 (unused variable)
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,  # noqa F841
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        match cls.env_settings_precedence:
            case "first":
                return (env_settings, init_settings, file_secret_settings)
            case "last":
                return (init_settings, file_secret_settings, env_settings)
            case "disabled":
                return (init_settings, file_secret_settings)
            case unreachable:
                assert_never(unreachable)


class ConfBuilder:
    #
    # Build the configuration model incrementally
    # from the registered sections
    #

    _global_sections: ClassVar[dict] = {}

    _trace_output = TypeAdapter(bool).validate_python(
        os.getenv("PLUGSCOPE_CONFSERVICE_TRACE", "no"),
    )

    def __init__(self):
        self._sections = self._global_sections.copy()
        self._model: Optional[Type[ConfigSettings]] = None
        self._conf: Optional[ConfigSettings] = None
        self._model_changed = True

    @property
    def version(self) -> str:
        return config_version

    @classmethod
    def _trace(cls, *args):
        if cls._trace_output:
            print("==CONFSERVICE:", *args, file=sys.stderr, flush=True)  # noqa T201

    def _create_base_model(self) -> Type[ConfigSettings]:
        def _model(model):
            assert_precondition(isinstance(model, tuple))
            match model:
                case (m,):
                    return (m, m())
                case (m, other):
                    return (m, other)
                case _ as unreachable:
                    assert_never(unreachable)

        return create_model(
            "_BaseConfig",
            __base__=ConfigSettings,
            **{name: _model(model) for name, model in self._sections.items()},
        )

    def _get_model(self) -> Type[ConfigSettings]:
        if self._model_changed or not self._model:
            self._model = self._create_base_model()
            self._model_changed = False

        return self._model

    def validate(self, obj: dict) -> ConfigSettings:
        """Validate the configuration against
        configuration models
        """
        BaseConfig = self._get_model()
        conf = BaseConfig.model_validate(obj, strict=True)

        self._conf = conf
        return conf

    def update_config(self, obj: Optional[dict] = None) -> ConfigSettings:
        """Update the configuration"""
        if self._model_changed or obj or not self._conf:
            if self._conf:
                data = self._conf.model_dump()
                if obj:
                    dict_merge(data, obj, self._conf)
            else:
                data = obj or {}

            self.validate(data)
        return cast(ConfigSettings, self._conf)

    def json_schema(self) -> dict[str, Any]:
        return self._get_model().model_json_schema()

    def add_section(
        self,
        name: str,
        model: Type | TypeAlias,
        field: Any = CreateDefault,  # noqa ANN401
        replace: bool = False,
    ):
        self._trace("Adding section:", name)
        if not replace and name in self._sections:
            raise SectionExists(name)
        self._sections[name] = (model,) if field is CreateDefault else (model, field)
        self._model_changed = True

    @property
    def conf(self) -> Any:  # noqa ANN401
        return self.update_config()

    #
    # Service registration
    #

    def register_as_service(self):
        componentmanager.register_service(CONFIG_SERVICE_CONTRACTID, self)

    @classmethod
    def get_service(cls) -> Self:
        """Return the builder registered as a service.
        This require that register_as_service has been called
        in the current context
        """
        return componentmanager.get_service(CONFIG_SERVICE_CONTRACTID)


def section(
    name: str,
    *,
    field: Any = CreateDefault,  # noqa ANN401
) -> Callable:
    """Decorator for config section definition

    Store section that will be initialized with builder
    instance

    @config.section("nvim")
    class NvimConfig(config.ConfigBase):
        ...
    """
    ConfBuilder._trace("Adding section:", name)
    if name in ConfBuilder._global_sections:
        raise SectionExists(name)

    def wrapper(model):
        ConfBuilder._global_sections[name] = (model,) if field is CreateDefault else (model, field)
        return model

    return wrapper
