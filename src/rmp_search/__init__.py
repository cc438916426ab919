"""Search and map EPA Risk Management Program facilities.

Two interchangeable stores (SQLite and per-state JSON documents) serve the
same filter, paging and GeoJSON contract over HTTP and from the command line.
"""

__version__ = "0.1.0"
