import pytest

from files_index.errors import MaintenanceTaskFailure
from files_index.index.keys import LOCK_KEY
from files_index.index.lock import load_task_status
from files_index.index.models import MaintenanceResult
from files_index.tasks import MERGE_ACTION, REBUILD_ACTION, MaintenanceRunner
from tests.fixtures.store_fixtures import seed_files


@pytest.fixture
def make_runner(local_store, index_config):
    runners = []

    def _make(action_runner=None):
        runner = MaintenanceRunner(local_store, index_config, action_runner=action_runner)
        runners.append(runner)
        return runner

    yield _make
    for runner in runners:
        runner.shutdown()


def test__runner__records_completed_rebuild(make_runner, local_store, sample_files):
    seed_files(local_store, sample_files)
    runner = make_runner()

    handle = runner.submit(REBUILD_ACTION)
    result = handle.future.result(timeout=10)

    status = load_task_status(local_store)
    assert result.status == "completed"
    assert status["status"] == "completed"
    assert status["taskId"] == handle.task_id
    assert status["processed"] == len(sample_files)
    assert runner.get(handle.task_id) is handle


def test__runner__records_maintenance_failure(make_runner, local_store):
    runner = make_runner()

    # Merge without a snapshot
    handle = runner.submit(MERGE_ACTION)

    assert isinstance(handle.future.exception(timeout=10), MaintenanceTaskFailure)
    assert load_task_status(local_store)["status"] == "failed"
    assert local_store.get(LOCK_KEY) is None


def test__runner__records_unexpected_crash(make_runner, local_store):
    def crashing_action(store, config, action):
        raise RuntimeError("unexpected")

    runner = make_runner(crashing_action)

    handle = runner.submit(REBUILD_ACTION)
    error = handle.future.exception(timeout=10)

    assert isinstance(error, RuntimeError)
    status = load_task_status(local_store)
    assert status["status"] == "failed"
    assert status["taskId"] == handle.task_id
    assert "RuntimeError" in status["error"]


def test__runner__custom_result_details_are_recorded(make_runner, local_store):
    def fake_action(store, config, action):
        return MaintenanceResult(task=action, status="completed", processed=3, details={"note": "ok"})

    handle = make_runner(fake_action).submit(MERGE_ACTION)
    handle.future.result(timeout=10)

    status = load_task_status(local_store)
    assert status["processed"] == 3
    assert status["note"] == "ok"


def test__runner__rejects_unknown_action(make_runner):
    with pytest.raises(ValueError):
        make_runner().submit("compact")
