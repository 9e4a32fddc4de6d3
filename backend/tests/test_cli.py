from pattern_alerts.cli import build_trigger, run_once
from pattern_alerts.services.chart_renderer import render_candles
from pattern_alerts.services.feature_extractor import extract_from_image
from pattern_alerts.services.pattern_check_scheduler import PatternCheckScheduler
from conftest import FakeMarketData, make_candles


def test_build_trigger():
    assert build_trigger(None, "s3cret").cron_secret == "s3cret"
    trigger = build_trigger("alice", "s3cret")
    assert trigger.user_id == "alice"
    assert trigger.cron_secret is None


async def test_run_once_with_scheduler(session_factory, settings, add_pattern):
    candles = make_candles(50)
    await add_pattern(extract_from_image(render_candles(candles)))
    scheduler = PatternCheckScheduler(
        session_factory,
        market_data=FakeMarketData({"USD/JPY": candles}),
        settings=settings,
    )

    summary = await run_once(scheduler=scheduler)

    assert summary["checked"] == 1
    assert summary["alerts_created"] == 1


async def test_run_once_scoped_to_user(session_factory, settings, add_pattern):
    candles = make_candles(50)
    await add_pattern(extract_from_image(render_candles(candles)), user_id="alice")
    await add_pattern(extract_from_image(render_candles(candles)), user_id="bob")
    scheduler = PatternCheckScheduler(
        session_factory,
        market_data=FakeMarketData({"USD/JPY": candles}),
        settings=settings,
    )

    summary = await run_once(user_id="bob", scheduler=scheduler)

    assert summary["checked"] == 1
