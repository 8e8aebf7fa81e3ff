"""Provide the exceptions raised by the search and transfer routines.

.. autoexception:: MeshXferError
.. autoexception:: PointNotFound
.. autoexception:: PreconditionError
.. autoexception:: PartitioningError
"""

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


class MeshXferError(Exception):
    """Exception base class for meshxfer exceptions.

    .. attribute:: message

        A :class:`str` describing the message for the exception.
    """

    def __init__(self, message):
        """Record the message on creation."""
        self.message = message
        super().__init__(self.message)


class PointNotFound(MeshXferError, LookupError):
    """Raised when no element contains a query point within tolerance.

    This is an expected outcome for points outside of the meshed domain,
    not a fault.

    .. attribute:: point

        The query point as a :class:`numpy.ndarray`.
    """

    def __init__(self, point, message=None):
        self.point = point
        if message is None:
            message = f"No element contains point {list(point)}."
        super().__init__(message)


class PreconditionError(MeshXferError, ValueError):
    """Raised when the inputs to a setup or apply call are inconsistent."""

    pass


class PartitioningError(MeshXferError):
    """Error tossed to indicate an invalid rendezvous decomposition."""

    pass
