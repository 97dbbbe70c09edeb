"""Upstream clients and the resolution engine built on top of them."""
