"""HTTP transport for npm-readfile.

Provides :class:`RegistryClient`, an :mod:`httpx`-based asynchronous client
that fetches package documents as JSON and streams tarball bodies, mapping
HTTP and network failures onto the :mod:`npmreadfile.exceptions`
hierarchy.
"""

from npmreadfile.client.registry_client import REGISTRY_ACCEPT, RegistryClient

__all__ = ["RegistryClient", "REGISTRY_ACCEPT"]
