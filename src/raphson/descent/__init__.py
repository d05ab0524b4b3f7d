"""Descent directions of the generalized first-order algorithm.

Submodules
----------
directions
    Newton and Gauss-Newton step directions

Routine Listings
----------------
compute_descent : function
    Descent direction at the current iterate
"""

from .directions import compute_descent

__all__: list[str] = ["compute_descent"]
