"""Test the simulation utilities."""

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

import numpy as np
import pytest  # noqa

from meshxfer.exceptions import PreconditionError
from meshxfer.mpi import enable_rank_labeled_print, get_rank_and_size
from meshxfer.simutil import (
    allsync,
    configurate,
    global_reduce,
    raise_if_any_rank,
)

from utilities import run_ranks


def test_serial_reduce():
    """Without a communicator scalars pass through and arrays are reduced."""
    values = np.array([1., -2., 3.])
    assert global_reduce(values, "min") == -2.
    assert global_reduce(values, "sum") == 2.
    assert global_reduce(4.5, "max") == 4.5
    assert global_reduce(True, "lor") is True

    with pytest.raises(ValueError, match="Unknown reduction"):
        global_reduce(1., "median")


@pytest.mark.parametrize(("op", "expected"), [
    ("min", -3.),
    ("max", 0.),
    ("sum", -6.),
    ("prod", -0.),
])
def test_global_reduce_scalars(op, expected):
    def rank_main(comm):
        return global_reduce(-float(comm.Get_rank()), op, comm=comm)

    assert run_ranks(4, rank_main) == [expected] * 4


def test_global_reduce_logical():
    def rank_main(comm):
        rank = comm.Get_rank()
        return (global_reduce(rank == 2, "lor", comm=comm),
                global_reduce(rank != 2, "land", comm=comm),
                allsync(rank, comm=comm))

    assert run_ranks(3, rank_main) == [(True, False, 2)] * 3


def test_rank_and_size():
    assert get_rank_and_size(None) == (0, 1)
    assert run_ranks(3, get_rank_and_size) == [(0, 3), (1, 3), (2, 3)]


def test_configurate():
    class Options:
        def __init__(self):
            self.tolerance = "1e-3"
            self.nranks = 4

    config = {"normalization": "geometry_measure", "nranks": "8"}

    assert configurate("normalization", config) == "geometry_measure"
    assert configurate("nranks", config, 1) == 8
    assert configurate("tolerance", Options(), 1e-6) == 1e-3
    assert configurate("nranks", Options()) == 4
    assert configurate("missing", config, "element_measure") \
        == "element_measure"
    assert configurate("missing", None) is None


def test_rank_labeled_print(capsys):
    import builtins
    original = builtins.print
    try:
        enable_rank_labeled_print()
        print("hello")
    finally:
        builtins.print = original

    out = capsys.readouterr().out
    assert out.startswith("[")
    assert out.rstrip().endswith("] hello")


def test_raise_if_any_rank():
    raise_if_any_rank(None)
    with pytest.raises(PreconditionError, match="bad input"):
        raise_if_any_rank("bad input")

    def rank_main(comm):
        rank = comm.Get_rank()
        raise_if_any_rank(None, comm=comm)
        with pytest.raises(PreconditionError) as excinfo:
            raise_if_any_rank("bad input" if rank == 2 else None, comm=comm)
        return str(excinfo.value)

    messages = run_ranks(3, rank_main, timeout=30)
    assert messages[2] == "bad input"
    assert messages[0] == messages[1] == "Precondition failed on another rank."
