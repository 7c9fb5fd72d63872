import pytest

from fakes import FULL_PAGE, OPEN_PAGE, URL, Recorder, SessionFactory, StubFetcher, StubNotifier
from rec_watch.checker import ALERT_TITLE, AvailabilityChecker
from rec_watch.errors import FetchNavigationError, FetchTimeout
from rec_watch.models import PageData, PollingState
from rec_watch.telegram_bot import BotChannelManager


def make_checker(fetcher, notifier=None, bot=None, **kwargs):
    state = PollingState()
    checker = AvailabilityChecker(
        fetcher, notifier or StubNotifier(), state, bot, nav_timeout=5, settle_delay=0, **kwargs
    )
    return checker, state


@pytest.mark.asyncio
async def test_available_page_records_result_and_alerts():
    notifier = StubNotifier()
    checker, state = make_checker(StubFetcher(OPEN_PAGE), notifier)

    result = await checker.check(URL)
    await checker.wait_for_alerts()

    assert result.available is True
    assert result.openings_count == 3
    assert result.activity_title == "Adult Basketball"
    assert state.last_result is result
    assert state.check_count == 1
    assert notifier.local == [(ALERT_TITLE, "3 spots available!")]
    assert notifier.opened == [URL]


@pytest.mark.asyncio
async def test_full_page_sends_no_alerts():
    notifier = StubNotifier()
    checker, state = make_checker(StubFetcher(FULL_PAGE), notifier)

    result = await checker.check(URL)
    await checker.wait_for_alerts()

    assert result.available is False
    assert result.is_full is True
    assert state.check_count == 1
    assert notifier.local == []
    assert notifier.opened == []


@pytest.mark.asyncio
async def test_result_log_reports_waitlist(caplog):
    checker, _ = make_checker(StubFetcher(FULL_PAGE))

    with caplog.at_level("INFO", logger="rec_watch.checker"):
        await checker.check(URL)

    assert "waitlist=True" in caplog.text


@pytest.mark.asyncio
async def test_unknown_openings_uses_generic_message_and_respects_auto_open_flag():
    page = PageData(True, False, None, "Swim")
    notifier = StubNotifier()
    checker, _ = make_checker(StubFetcher(page), notifier, auto_open=False)

    await checker.check(URL)
    await checker.wait_for_alerts()

    assert notifier.local == [(ALERT_TITLE, "Spots available!")]
    assert notifier.opened == []


@pytest.mark.asyncio
@pytest.mark.parametrize("error", [FetchTimeout("timed out after 60s"), FetchNavigationError("net::ERR")])
async def test_fetch_failure_returns_error_result(error):
    checker, state = make_checker(StubFetcher(error))

    result = await checker.check(URL)

    assert result.available is False
    assert result.error == str(error)
    assert state.last_result is result
    assert state.check_count == 0


@pytest.mark.asyncio
async def test_unexpected_fetch_exception_is_contained():
    checker, _ = make_checker(StubFetcher(KeyError("body")))

    result = await checker.check(URL)

    assert result.ok is False
    assert "Unexpected error" in result.error


@pytest.mark.asyncio
async def test_notification_failures_do_not_change_result():
    checker, state = make_checker(StubFetcher(OPEN_PAGE), StubNotifier(fail=True))

    result = await checker.check(URL)
    await checker.wait_for_alerts()

    assert result.available is True
    assert result.error is None
    assert state.check_count == 1


@pytest.mark.asyncio
async def test_connected_bot_receives_alert():
    factory = SessionFactory()
    bot = BotChannelManager(Recorder(), session_factory=factory)
    await bot.start("token-a")
    await factory.sessions[0].register("1001")
    checker, _ = make_checker(StubFetcher(OPEN_PAGE), bot=bot)

    await checker.check(URL)
    await checker.wait_for_alerts()

    (chat_id, text), = factory.sessions[0].sent
    assert chat_id == "1001"
    assert "Adult Basketball" in text
    assert "3 openings remaining" in text
    assert URL in text


@pytest.mark.asyncio
async def test_configured_but_unregistered_bot_is_skipped():
    factory = SessionFactory()
    bot = BotChannelManager(Recorder(), session_factory=factory)
    await bot.start("token-a")
    checker, _ = make_checker(StubFetcher(OPEN_PAGE), bot=bot)

    await checker.check(URL)
    await checker.wait_for_alerts()

    assert factory.sessions[0].sent == []
