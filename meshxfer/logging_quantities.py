"""Support for performance logging of transfers."""

__copyright__ = """
Copyright (C) 2020 University of Illinois Board of Trustees
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

__doc__ = """
.. autoclass:: PythonMemoryUsage
.. autoclass:: PythonInitTime
.. autoclass:: RendezvousElementCount
.. autofunction:: initialize_logmgr
.. autofunction:: logmgr_add_timer
.. autofunction:: logmgr_set_rendezvous
"""

import logging

from logpyle import (LogQuantity, PostLogQuantity, LogManager, IntervalTimer,
    add_run_info, add_general_quantities)

from typing import Optional


logger = logging.getLogger(__name__)


def initialize_logmgr(enable_logmgr: bool,
                      filename: Optional[str] = None, mode: str = "wu",
                      mpi_comm=None) -> Optional[LogManager]:
    """Create and initialize a meshxfer-specific :class:`logpyle.LogManager`."""
    if not enable_logmgr:
        return None

    logmgr = LogManager(filename=filename, mode=mode, mpi_comm=mpi_comm)

    logmgr.add_quantity(PythonInitTime())
    logmgr.enable_save_on_sigterm()

    add_run_info(logmgr)
    add_general_quantities(logmgr)

    try:
        logmgr.add_quantity(PythonMemoryUsage())
    except ImportError:
        from warnings import warn
        warn("psutil module not found, not tracking memory consumption."
             "Install it with 'pip install psutil'")

    return logmgr


def logmgr_add_timer(logmgr: Optional[LogManager], name: str,
                     description: str) -> Optional[IntervalTimer]:
    """Create an :class:`logpyle.IntervalTimer` and register it with *logmgr*.

    Returns *None* if *logmgr* is *None*, or the timer already registered
    under *name*.
    """
    if logmgr is None:
        return None

    if name in logmgr.quantity_data:
        for gd_lst in [logmgr.before_gather_descriptors,
                logmgr.after_gather_descriptors]:
            for gd in gd_lst:
                if gd.quantity.name == name:
                    return gd.quantity

    timer = IntervalTimer(name, description)
    logmgr.add_quantity(timer)
    return timer


class PythonMemoryUsage(PostLogQuantity):
    """Logging support for Python memory usage (RSS, host).

    Uses :mod:`psutil` to track memory usage. Virtually no overhead.
    """

    def __init__(self, name: Optional[str] = None):

        if name is None:
            name = "memory_usage_python"

        super().__init__(name, "MByte", description="Memory usage (RSS, host)")

        import psutil  # pylint: disable=import-error
        self.process = psutil.Process()

    def __call__(self) -> float:
        """Return the memory usage in MByte."""
        return self.process.memory_info()[0] / 1024 / 1024


class PythonInitTime(PostLogQuantity):
    """Stores the Python startup time.

    Measures the time from process start to when this quantity is initialized.
    """

    def __init__(self, name: str = "t_python_init") -> None:
        LogQuantity.__init__(self, name, "s", "Python init time")

        try:
            import psutil
        except ModuleNotFoundError:
            from warnings import warn
            warn("Measuring the Python init time requires the 'psutil' module.")
            self.done = True
        else:
            from time import time
            self.python_init_time = time() - psutil.Process().create_time()
            self.done = False

    def __call__(self) -> Optional[float]:
        """Return the Python init time in seconds."""
        if self.done:
            return None

        self.done = True
        return self.python_init_time


class RendezvousElementCount(PostLogQuantity):
    """Number of source elements held by this rank after redistribution.

    The count is read from a :class:`~meshxfer.rendezvous.Rendezvous`; before
    it is built the quantity reports *None*.
    """

    def __init__(self, name: str = "rendezvous_elements") -> None:
        super().__init__(name, "1", description="Rendezvous elements on rank")
        self.rendezvous = None

    def set_rendezvous(self, rendezvous) -> None:
        """Report the element count of *rendezvous* from now on."""
        self.rendezvous = rendezvous

    def __call__(self) -> Optional[int]:
        if self.rendezvous is None:
            return None
        return self.rendezvous.nelements


def logmgr_set_rendezvous(logmgr: Optional[LogManager], rendezvous) -> None:
    """Point the :class:`RendezvousElementCount` of *logmgr* at *rendezvous*.

    The quantity is added to *logmgr* on first use. Does nothing if *logmgr*
    is *None*.
    """
    if logmgr is None:
        return

    for gd_lst in [logmgr.before_gather_descriptors,
            logmgr.after_gather_descriptors]:
        for gd in gd_lst:
            if isinstance(gd.quantity, RendezvousElementCount):
                gd.quantity.set_rendezvous(rendezvous)
                return

    quantity = RendezvousElementCount()
    quantity.set_rendezvous(rendezvous)
    logmgr.add_quantity(quantity)
