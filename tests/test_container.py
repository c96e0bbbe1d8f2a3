"""Tests for container wiring and the service lifespan."""

import pytest

from core.config import Settings
from core.container import Container
from main import lifespan
from models.task import TaskCreate


@pytest.fixture
def app_container(settings):
    app_container = Container()
    app_container.settings.override(settings)
    return app_container


class TestContainer:

    def test_singletons_share_collaborators(self, app_container):
        coordinator = app_container.task_coordinator()

        assert coordinator is app_container.task_coordinator()
        assert coordinator.cron_scheduler is app_container.cron_scheduler()
        assert coordinator.workflow_service.engine is app_container.workflow_engine()
        assert app_container.workflow_engine().database is app_container.database()

    def test_scheduler_uses_settings(self, tmp_path):
        app_container = Container()
        app_container.settings.override(Settings(
            database_url=f"sqlite+aiosqlite:///{tmp_path / 'x.db'}",
            scheduler_timezone="Europe/Oslo",
            scheduler_misfire_grace_time=15,
        ))
        scheduler = app_container.cron_scheduler()
        assert scheduler.timezone == "Europe/Oslo"
        assert scheduler.misfire_grace_time == 15


class TestLifespan:

    async def test_startup_rearms_recurring_tasks(self, app_container):
        async with lifespan(app_container):
            coordinator = app_container.task_coordinator()
            task = await coordinator.create_task(TaskCreate.model_validate({
                "agentId": "a", "sessionId": "s", "title": "tick",
                "isRecurring": True, "cronExpression": "0 * * * *",
            }))
            assert app_container.cron_scheduler().running

        assert not app_container.cron_scheduler().running
        assert not app_container.cron_scheduler().is_scheduled(task.task_id)

        # A fresh process re-arms the stored recurring task on startup
        restarted = Container()
        restarted.settings.override(app_container.settings())
        async with lifespan(restarted):
            assert restarted.cron_scheduler().is_scheduled(task.task_id)
