from __future__ import annotations

import pytest

from uptime_keeper.scheduler import CheckScheduler, parse_cron_expression


@pytest.mark.parametrize("expr", ["", "* * * *", "* * * * * *", "every ten minutes"])
def test_parse_cron_expression_rejects_wrong_field_count(expr: str) -> None:
    with pytest.raises(ValueError):
        parse_cron_expression(expr)


def test_parse_cron_expression_accepts_five_fields() -> None:
    trigger = parse_cron_expression("*/10 * * * *")
    assert "minute='*/10'" in str(trigger)


def test_add_cron_job_replaces_existing() -> None:
    async def job() -> None:
        return None

    scheduler = CheckScheduler()
    scheduler.add_cron_job("check", job, "*/10 * * * *")
    scheduler.add_cron_job("check", job, "0 * * * *")
    assert list(scheduler.jobs) == ["check"]
    assert "minute='0'" in str(scheduler.jobs["check"].trigger)
    scheduler.remove_job("check")
    assert scheduler.jobs == {}
