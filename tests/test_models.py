import pytest

from rec_watch.errors import ValidationError
from rec_watch.models import CheckResult, PollConfig, PollingState


def test_poll_config_updates_only_given_fields():
    config = PollConfig("https://a.test", 30)
    config.update(interval_seconds=60)
    assert config.target_url == "https://a.test"
    assert config.interval_seconds == 60

    config.update(url=" https://b.test ")
    assert config.target_url == "https://b.test"
    assert config.interval_seconds == 60


@pytest.mark.parametrize("kwargs", [{"interval_seconds": 0}, {"interval_seconds": -5}, {"url": "  "}])
def test_poll_config_rejects_bad_values_without_mutating(kwargs):
    config = PollConfig("https://a.test", 30)
    with pytest.raises(ValidationError):
        config.update(url="https://b.test" if "url" not in kwargs else kwargs["url"],
                      interval_seconds=kwargs.get("interval_seconds"))
    assert config.target_url == "https://a.test"
    assert config.interval_seconds == 30


def test_polling_state_counts_only_successful_checks():
    state = PollingState()
    state.record(CheckResult(url="u", available=True))
    failed = CheckResult.failed("u", "timeout")
    state.record(failed)

    assert state.check_count == 1
    assert state.last_result is failed


def test_check_result_wire_shape():
    payload = CheckResult(url="u", available=True, openings_count=2, activity_title="Swim").to_dict()
    assert set(payload) == {
        "timestamp", "available", "openingsCount", "isFull", "activityTitle", "url", "error"
    }
    assert payload["openingsCount"] == 2
    assert payload["error"] is None
    assert payload["timestamp"].endswith("+00:00")
