"""
Tests for the worker process entry point (apps/worker/main.py).
"""
import importlib.util
import os

import pytest

API_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
WORKER_MAIN = os.path.join(os.path.dirname(API_DIR), "worker", "main.py")


def _load_worker_main():
    spec = importlib.util.spec_from_file_location("worker_main", WORKER_MAIN)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def test_api_dir_defaults_to_the_sibling_checkout(monkeypatch):
    monkeypatch.delenv("API_DIR", raising=False)

    module = _load_worker_main()

    assert os.path.samefile(module.API_DIR, API_DIR)


def test_api_dir_from_environment(monkeypatch):
    monkeypatch.setenv("API_DIR", API_DIR)

    assert _load_worker_main().API_DIR == API_DIR


@pytest.mark.parametrize("task_name", ["worker.health_check", "tasks.check_overdue_activity_logs"])
def test_celery_tasks_registered(task_name):
    assert task_name in _load_worker_main().celery_app.tasks
