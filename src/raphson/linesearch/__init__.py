"""Line searches on the squared residual norm.

Submodules
----------
strategies
    Full step, Armijo backtracking and external line-search adapter

Routine Listings
----------------
select_step : function
    Step length for one iteration
is_line_search : function
    Whether an object is a line-search strategy
validate_line_search : function
    Reject invalid line-search parameters
"""

from .strategies import is_line_search, select_step, validate_line_search

__all__: list[str] = [
    "is_line_search",
    "select_step",
    "validate_line_search",
]
