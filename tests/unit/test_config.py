from __future__ import annotations

import json

import pytest

from action.config import (
    ActionConfig,
    Config,
    KindAndConfig,
    Parameters,
    build_feed,
    build_mapper,
    build_sink,
    load_config,
)
from action.errors import ConfigLoadError, ConfigurationError
from common.mapper import TextMapper
from common.rss import RssFeed
from common.weather import WeatherFeed
from common.web import WebSink


SAMPLE = {
    "actions": [
        {
            "key": "index1",
            "feed": {"kind": "rss", "config": {"url": "https://news.example.com/rss", "count": 10}},
            "mapper": {"kind": "text", "config": {"text": "{title}\n{link}"}},
            "sink": {"kind": "web", "config": {"method": "POST", "url": "https://hooks.example.com/a"}},
            "config": {"schedule": "0 */30 * * * *"},
        },
        {
            "key": "Index1",
            "feed": {"kind": "weather", "config": {"key": "K", "location": "101010100"}},
            "mapper": {"kind": "text", "config": {"text": "{text_day} {temp_min}-{temp_max}"}},
            "sink": {"kind": "web", "config": {"method": "GET", "url": "https://hooks.example.com/b"}},
        },
    ],
    "parameters": {"state_key": "state_key", "state_file": "ifttt_state"},
}


def test_parses_sample_and_coerces_scalars():
    config = Config.from_json(json.dumps(SAMPLE))

    assert [a.key for a in config.actions] == ["index1", "Index1"]
    assert config.actions[0].feed.config["count"] == "10"
    assert config.actions[0].schedule == "0 */30 * * * *"
    assert config.actions[1].schedule is None
    assert config.parameters.state_key == "state_key"
    assert config.parameters.key_derivation == "pbkdf2"


def test_builds_connectors_by_kind():
    config = Config.from_obj(SAMPLE)
    first = config.actions[0].into_action({"rss_last_link": "x"})
    second = config.actions[1].into_action({})

    assert isinstance(first.feed, RssFeed) and first.feed.count == 10
    assert isinstance(first.mapper, TextMapper)
    assert isinstance(first.sink, WebSink) and first.sink.method == "POST"
    assert first.state == {"rss_last_link": "x"}
    assert first.schedule == "0 */30 * * * *"
    assert isinstance(second.feed, WeatherFeed)


def test_parameters_defaults():
    params = Parameters()
    assert params.state_key is None
    assert params.state_file == "ifttt_state"
    assert params.key_derivation == "pbkdf2"


def test_duplicate_keys_rejected():
    data = {"actions": [SAMPLE["actions"][0], SAMPLE["actions"][0]]}
    with pytest.raises(ConfigLoadError):
        Config.from_obj(data)


@pytest.mark.parametrize("text", ["", "{", '{"actions": "nope"}', '{"actions": [{"key": "a"}]}'])
def test_invalid_documents_raise_config_load_error(text: str):
    with pytest.raises(ConfigLoadError):
        Config.from_json(text)


def test_load_config_from_file(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps(SAMPLE), encoding="utf-8")
    assert len(load_config(path).actions) == 2

    with pytest.raises(ConfigLoadError):
        load_config(tmp_path / "missing.json")


def test_unknown_kind_is_configuration_error():
    with pytest.raises(ConfigurationError):
        build_feed(KindAndConfig(kind="ftp"))
    with pytest.raises(ConfigurationError):
        build_mapper(KindAndConfig(kind="markdown"))
    with pytest.raises(ConfigurationError):
        build_sink(KindAndConfig(kind="email"))


def test_missing_option_is_configuration_error():
    with pytest.raises(ConfigurationError):
        build_feed(KindAndConfig(kind="rss", config={"url": "https://news.example.com/rss"}))


def test_non_integer_count_is_configuration_error():
    with pytest.raises(ConfigurationError):
        build_feed(KindAndConfig(kind="rss", config={"url": "https://news.example.com/rss", "count": "ten"}))


def test_malformed_schedule_is_configuration_error_at_build_time():
    data = dict(SAMPLE["actions"][0], config={"schedule": "every day"})
    with pytest.raises(ConfigurationError):
        ActionConfig.model_validate(data).into_action({})
