"""Common fixtures for all tests."""

__copyright__ = """
Copyright (C) 2026 University of Illinois Board of Trustees
"""

__license__ = """
Permission is hereby granted, free of charge, to any person obtaining a copy
of this software and associated documentation files (the "Software"), to deal
in the Software without restriction, including without limitation the rights
to use, copy, modify, merge, publish, distribute, sublicense, and/or sell
copies of the Software, and to permit persons to whom the Software is
furnished to do so, subject to the following conditions:

The above copyright notice and this permission notice shall be included in
all copies or substantial portions of the Software.

THE SOFTWARE IS PROVIDED "AS IS", WITHOUT WARRANTY OF ANY KIND, EXPRESS OR
IMPLIED, INCLUDING BUT NOT LIMITED TO THE WARRANTIES OF MERCHANTABILITY,
FITNESS FOR A PARTICULAR PURPOSE AND NONINFRINGEMENT. IN NO EVENT SHALL THE
AUTHORS OR COPYRIGHT HOLDERS BE LIABLE FOR ANY CLAIM, DAMAGES OR OTHER
LIABILITY, WHETHER IN AN ACTION OF CONTRACT, TORT OR OTHERWISE, ARISING FROM,
OUT OF OR IN CONNECTION WITH THE SOFTWARE OR THE USE OR OTHER DEALINGS IN
THE SOFTWARE.
"""

import logging

import pytest


@pytest.fixture
def meshxfer_log(caplog):
    """Capture records of the :mod:`meshxfer` loggers down to INFO."""
    caplog.set_level(logging.INFO, logger="meshxfer")
    return caplog


@pytest.fixture(autouse=True)
def mem_usage(capsys, pytestconfig):
    yield

    # {{{ Memory usage reporting

    if not pytestconfig.option.verbose:
        return

    # Copied from logpyle.MemoryHwm
    import os
    if os.uname().sysname == "Darwin":
        fac = 1024*1024
    else:
        fac = 1024

    from resource import RUSAGE_SELF, getrusage
    res = getrusage(RUSAGE_SELF)

    with capsys.disabled():
        print(f" HWM={res.ru_maxrss / fac}")

    # }}}
