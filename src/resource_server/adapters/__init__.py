"""Adapters layer - transport and parsing at the edge of the service.

- Inbound adapters: the REST API and the query option parser
"""
