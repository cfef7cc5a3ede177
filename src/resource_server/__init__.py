"""
Resource Server - Typed entity collections over HTTP

An in-memory data-resource server exposing Customers and Orders with CRUD
semantics and an OData-style query sublanguage (filter, sort, paging,
expansion, aggregation).
"""

__version__ = "0.1.0"
__author__ = "Systems Engineering Portfolio"
