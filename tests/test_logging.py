from __future__ import annotations

"""
Logging setup and the records a build and run emit.
"""

import logging
from pathlib import Path

import pytest

from composim.component import ComponentDef
from composim.model import Model
from composim.time_grid import make_grid
from composim.utils_logging import configure_logging


@pytest.fixture
def restore_root_logging():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    for handler in root.handlers[:]:
        if handler not in handlers:
            root.removeHandler(handler)
            handler.close()
    for handler in handlers:
        if handler not in root.handlers:
            root.addHandler(handler)
    root.setLevel(level)


def _tiny_model() -> Model:
    comp = ComponentDef("A")
    comp.add_variable("x", dims=("time",))

    @comp.run_timestep
    def _(p, v, d, t):
        v.x[t] = 1.0

    m = Model(make_grid(first=2020, step=1, count=2))
    m.add_component(comp)
    return m


def test_configure_logging_writes_run_log(tmp_path: Path, restore_root_logging):
    log_file = configure_logging(tmp_path / "logs", debug=True)
    assert log_file == tmp_path / "logs" / "run.log"
    assert logging.getLogger().level == logging.DEBUG

    logging.getLogger("composim.test").info("hello")
    for handler in logging.getLogger().handlers:
        handler.flush()
    text = log_file.read_text(encoding="utf-8")
    assert "| INFO | composim.test | hello" in text


def test_console_only(restore_root_logging):
    assert configure_logging() is None
    assert logging.getLogger().level == logging.INFO


def test_build_and_run_records(caplog):
    m = _tiny_model()
    with caplog.at_level(logging.DEBUG, logger="composim"):
        m.run()
    messages = [r.getMessage() for r in caplog.records]
    assert any(msg.startswith("Built model 'model'") for msg in messages)
    assert any(msg.startswith("Starting run") for msg in messages)
    assert any(msg.startswith("Completed period 2021") for msg in messages)
    assert any(msg == "Run finished at period 2021" for msg in messages)
