import dataclasses as dc
import json
import os
from pathlib import Path
from typing import Any, ClassVar, Protocol, TypeVar, cast, overload

import toml


class ConfigError(Exception):
    pass


class MissingKey(ConfigError):
    pass


@dc.dataclass
class Logging:
    log_level: str = "INFO"
    web_log_level: str = "WARNING"


@dc.dataclass
class Server:
    port: int = 3000
    host: str = "0.0.0.0"
    path: str = "/slack/events"
    install_path: str = "/slack/install"
    redirect_path: str = "/slack/oauth_redirect"


@dc.dataclass
class Slack:
    signing_secret: str
    # Single workspace mode when set, OAuth installs are disabled
    bot_token: str = ""
    client_id: str = ""
    client_secret: str = ""
    scopes: list[str] = dc.field(default_factory=list)
    user_scopes: list[str] = dc.field(default_factory=list)
    redirect_uri: str = ""
    state_expiration_seconds: int = 600
    success_url: str = ""
    failure_url: str = ""


@dc.dataclass
class Dispatch:
    ack_timeout: float = 3.0
    process_before_response: bool = False
    strict_ack: bool = False


@dc.dataclass
class Database:
    uri: str = ""


@dc.dataclass
class Sentry:
    dsn: str = ""
    env: str = "development"


@dc.dataclass
class Config:
    slack: Slack
    logging: Logging = dc.field(default_factory=Logging)
    server: Server = dc.field(default_factory=Server)
    dispatch: Dispatch = dc.field(default_factory=Dispatch)
    database: Database = dc.field(default_factory=Database)
    sentry: Sentry = dc.field(default_factory=Sentry)


class DataclassInstance(Protocol):
    __dataclass_fields__: ClassVar[dict[str, dc.Field[Any]]]


DataclassT = TypeVar("DataclassT", bound=DataclassInstance)
Value = str | bool | int | float | list


def _required(klass: type) -> set[str]:
    return {
        f.name
        for f in dc.fields(klass)
        if f.default is dc.MISSING and f.default_factory is dc.MISSING
    }


@overload
def from_dict(klass: type[DataclassT], d: dict) -> DataclassT:
    ...


@overload
def from_dict(klass: Any, d: Value) -> Value:
    ...


def from_dict(klass: type[DataclassT], d: dict | Value) -> DataclassT | Value:
    """Parse a dictionary into an instance of the given dataclass

    For example:
        @dc.dataclass
        class SubConfig:
            dorf: str

        @dc.dataclass
        class Config:
            foo: str
            bar: int
            baz: list[str]
            sub: SubConfig
            norf: str = "default"

        config = from_dict(Config, {
            "foo": "norf",
            "bar": 123,
            "baz": ["a", "b", "c"],
            "sub": {"dorf": "x"},
        })

    will return an instance of `Config` with the values from the dict, fields
    with defaults can be left out
    """
    if not dc.is_dataclass(klass):
        return cast(Value, d)
    if not isinstance(d, dict):
        raise ConfigError("Expected a dictionary")

    fieldtypes = {f.name: f.type for f in dc.fields(klass)}
    if missing := _required(klass) - set(d.keys()):
        raise MissingKey(
            f"Missing key(s) in {klass.__name__} section: {', '.join(sorted(missing))}"
        )
    if unknown := set(d.keys()) - set(fieldtypes.keys()):
        raise ConfigError(
            f"Unknown key(s) in {klass.__name__} section: {', '.join(sorted(unknown))}"
        )
    return klass(**{f: from_dict(fieldtypes[f], d[f]) for f in d})


def from_env(klass: type[DataclassT], base_name: str) -> DataclassT:
    """Parse env into an instance of the given dataclass

    For example:
        @dc.dataclass
        class SubConfig:
            dorf: str

        @dc.dataclass
        class Config:
            foo: str
            bar: int
            baz: list[str]
            sub: SubConfig

        config = from_env(Config, "ENV_EXAMPLE")

    will return an instance of `Config` with values from the environment

    In this example `from_env` will look for the following values:

        * `ENV_EXAMPLE_FOO` -> Config.foo
        * `ENV_EXAMPLE_BAR` -> Config.bar
        * `ENV_EXAMPLE_BAZ` -> Config.baz
        * `ENV_EXAMPLE_SUB__DORF` -> Config.sub.dorf

    If the dataclass field type is not str, it's expected to be json loadable.
    Fields with defaults are only read if the env var is set.
    """
    required = _required(klass)
    fields = {}
    for field in dc.fields(klass):
        if dc.is_dataclass(field.type):
            fields[field.name] = from_env(
                field.type, f"{base_name}_{field.name}_".upper()
            )
        else:
            env_var_name = f"{base_name}_{field.name}".upper()
            if env_var_name not in os.environ:
                if field.name not in required:
                    continue
                raise MissingKey(
                    f"Missing env var for {klass.__name__} section: {env_var_name}"
                )
            env_var = os.environ[env_var_name]
            if field.type != str:
                env_var = json.loads(env_var)
            fields[field.name] = env_var
    return klass(**fields)


# Where to load the config from, supported options:
# * `config.toml`: The default, see config.example.toml. Any other path to a
#   toml file works as well
# * `env`: Each value is read from a `SLACKWIRE_` prefixed env var
CONFIG_SOURCE = os.environ.get("SLACKWIRE_CONFIG_SOURCE", "config.toml")


def load_config(source: str = CONFIG_SOURCE) -> Config:
    if source == "env":
        return from_env(Config, "SLACKWIRE")

    config_path = Path(source)
    if not config_path.exists():
        raise ConfigError(f"Config file not found: {config_path}")
    with open(config_path, "r") as f:
        _config = toml.load(f)

    return from_dict(Config, _config)
