# Copyright (c) 2026 cansession contributors
# This software is distributed under the terms of the MIT License.
# type: ignore

import os
import sys
import shutil
from functools import partial
from pathlib import Path
import nox


ROOT_DIR = Path(__file__).resolve().parent

PYTHONS = ["3.8", "3.9", "3.10", "3.11", "3.12"]
"""The newest supported Python shall be listed last."""

MYPY_VERSION = "1.8.0"

nox.options.error_on_external_run = True


@nox.session(python=False)
def clean(session):
    wildcards = [
        "dist",
        "build",
        "html*",
        ".coverage*",
        ".*cache",
        "*.egg-info",
        "*.log",
        "*.tmp",
        ".nox",
    ]
    for w in wildcards:
        for f in Path.cwd().glob(w):
            session.log(f"Removing: {f}")
            shutil.rmtree(f, ignore_errors=True)


@nox.session(python=PYTHONS, reuse_venv=True)
def test(session):
    session.log("Using the newest supported Python: %s", is_latest_python(session))
    session.install("-e", ".[testing]")

    # The test suite writes the log file into the working directory, so we change it.
    # We have to symlink the original setup.cfg as well if we run tools from the new directory.
    tmp_dir = Path(session.create_tmp()).resolve()
    session.cd(tmp_dir)
    fn = "setup.cfg"
    if not (tmp_dir / fn).exists():
        (tmp_dir / fn).symlink_to(ROOT_DIR / fn)

    vcan = Path("/sys/class/net", os.environ.get("CANSESSION_TEST_VCAN", "vcan0"))
    if sys.platform.startswith("linux") and not vcan.exists():
        session.log("The SocketCAN tests will be skipped; see cansession.driver.socketcan on how to set up vcan")

    src_dirs = [
        ROOT_DIR / "cansession",
        ROOT_DIR / "tests",
    ]
    env = {
        "PYTHONASYNCIODEBUG": "1",
        "PYTHONPATH": str(ROOT_DIR),
    }
    pytest = partial(session.run, "coverage", "run", "-m", "pytest", env=env)
    pytest(*map(str, src_dirs), *session.posargs)

    # Coverage analysis and report.
    fail_under = 0 if session.posargs else 85
    session.run("coverage", "combine")
    session.run("coverage", "report", f"--fail-under={fail_under}")
    if session.interactive:
        session.run("coverage", "html")
        report_file = Path.cwd().resolve() / "htmlcov" / "index.html"
        session.log(f"COVERAGE REPORT: file://{report_file}")


@nox.session(python=PYTHONS, reuse_venv=True)
def lint(session):
    # MyPy has to be run separately per Python version we support.
    session.install("-e", ".[testing]")
    session.install(
        "mypy   == " + MYPY_VERSION,
        "pylint ~= 3.0",
        "nox",
    )
    src_dirs = [
        ROOT_DIR / "cansession",
        ROOT_DIR / "tests",
    ]
    session.run("mypy", "--strict", "--config-file", str(ROOT_DIR / "setup.cfg"), *map(str, src_dirs))
    session.run("pylint", "--rcfile", str(ROOT_DIR / "setup.cfg"), *map(str, src_dirs))


def is_latest_python(session) -> bool:
    return PYTHONS[-1] in session.run("python", "-V", silent=True)
