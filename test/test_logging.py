"""Test the logging quantities and timers."""

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
import pytest

from logpyle import (
    IntervalTimer,
    LogManager,
    add_general_quantities,
)

from meshxfer.geometry import Box
from meshxfer.integral_assembly import IntegralAssemblyMap
from meshxfer.logging_quantities import (
    RendezvousElementCount,
    initialize_logmgr,
    logmgr_add_timer,
    logmgr_set_rendezvous,
)
from meshxfer.managers import FieldManager, GeometryManager, MeshManager
from meshxfer.traits import ArrayField

from utilities import MyIntegrator, MyMeasure, build_rank_blocks


@pytest.fixture
def basic_logmgr():
    import os

    # setup
    filename = "THIS_LOG_SHOULD_BE_DELETED.sqlite"
    logmgr = LogManager(filename, "wo")

    # give obj to test
    yield logmgr

    # clean up object
    logmgr.close()
    os.remove(filename)


def _find_quantity(logmgr, name):
    for gd_lst in [logmgr.before_gather_descriptors,
            logmgr.after_gather_descriptors]:
        for gd in gd_lst:
            if gd.quantity.name == name:
                return gd.quantity
    return None


def test_disabled_logmgr():
    assert initialize_logmgr(False) is None
    assert logmgr_add_timer(None, "t_foo", "foo") is None
    # no-op without a log manager
    logmgr_set_rendezvous(None, object())


def test_logmgr_add_timer(basic_logmgr):
    add_general_quantities(basic_logmgr)

    timer = logmgr_add_timer(basic_logmgr, "t_foo", "Time spent in foo [s]")
    assert isinstance(timer, IntervalTimer)
    assert "t_foo" in basic_logmgr.quantity_data

    assert logmgr_add_timer(basic_logmgr, "t_foo", "ignored") is timer
    assert logmgr_add_timer(basic_logmgr, "t_bar", "bar") is not timer

    basic_logmgr.tick_before()
    with timer.get_sub_timer():
        pass
    basic_logmgr.tick_after()


def test_rendezvous_element_count(basic_logmgr):
    quantity = RendezvousElementCount()
    assert quantity() is None

    block = build_rank_blocks(1, 3)[1]
    mesh_manager = MeshManager([block], dim=3)
    geometry_manager = GeometryManager(
        [Box([0., 0., 1.], [2., 2., 2.]),
         Box([0.5, 0.5, 1.5], [1.5, 1.5, 2.5])],
        [0, 1])

    assembly_map = IntegralAssemblyMap(None, 3, logmgr=basic_logmgr)
    assembly_map.setup(mesh_manager, MyMeasure(block), geometry_manager)

    for name in ["t_assembly_setup", "t_rendezvous_build",
                 "rendezvous_elements"]:
        assert name in basic_logmgr.quantity_data

    count = _find_quantity(basic_logmgr, "rendezvous_elements")
    assert count() == block.nelements == 4

    target_field = ArrayField(2, 3)
    assembly_map.apply(MyIntegrator(block), FieldManager(target_field))
    assert "t_assembly_apply" in basic_logmgr.quantity_data
    assert np.allclose(target_field.data, 2.)

    # a second setup re-points the existing quantity
    assembly_map.setup(mesh_manager, MyMeasure(block), geometry_manager)
    assert _find_quantity(basic_logmgr, "rendezvous_elements") is count
    assert count() == 4
